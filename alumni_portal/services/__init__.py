"""
Services module - business logic over the MongoDB stores.
"""
