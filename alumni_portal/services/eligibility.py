"""
Eligibility Evaluator

A student is admitted to a session when BOTH filters admit them:
- audience:    "all" in target_audience      OR year_of_study in target_audience
- department:  "ALL" in target_departments   OR department in target_departments

The single-student check and the bulk MongoDB query are built from the
same two helpers below, so they cannot drift apart.
"""

from typing import Iterable, List, Optional

from alumni_portal.schemas.schemas import AUDIENCE_WILDCARD, DEPARTMENT_WILDCARD, UserRole


def normalize_audience(target_audience: Optional[Iterable[str]]) -> List[str]:
    """Missing or empty audience means everyone."""
    values = list(target_audience or [])
    return values or [AUDIENCE_WILDCARD]


def normalize_departments(target_departments: Optional[Iterable[str]]) -> List[str]:
    """Missing or empty department list means every department."""
    values = list(target_departments or [])
    return values or [DEPARTMENT_WILDCARD]


def _admits(values: List[str], wildcard: str, tag: Optional[str]) -> bool:
    return wildcard in values or (tag is not None and tag in values)


def _restriction(values: List[str], wildcard: str) -> Optional[List[str]]:
    """Values the bulk query must match, or None when the wildcard admits all."""
    return None if wildcard in values else values


def is_eligible(
    year_of_study: Optional[str],
    department: Optional[str],
    target_audience: Optional[Iterable[str]],
    target_departments: Optional[Iterable[str]],
) -> bool:
    audience = normalize_audience(target_audience)
    departments = normalize_departments(target_departments)
    return (
        _admits(audience, AUDIENCE_WILDCARD, year_of_study)
        and _admits(departments, DEPARTMENT_WILDCARD, department)
    )


def is_student_eligible(student: dict, session: dict) -> bool:
    """Check a user document against a session document."""
    return is_eligible(
        student.get("year_of_study"),
        student.get("department"),
        session.get("target_audience"),
        session.get("target_departments"),
    )


def eligible_students_query(
    target_audience: Optional[Iterable[str]],
    target_departments: Optional[Iterable[str]],
) -> dict:
    """MongoDB filter selecting every student is_eligible() would admit."""
    query = {"role": UserRole.student.value}

    years = _restriction(normalize_audience(target_audience), AUDIENCE_WILDCARD)
    if years is not None:
        query["year_of_study"] = {"$in": years}

    departments = _restriction(normalize_departments(target_departments), DEPARTMENT_WILDCARD)
    if departments is not None:
        query["department"] = {"$in": departments}

    return query


def session_eligibility_query(session: dict) -> dict:
    return eligible_students_query(session.get("target_audience"), session.get("target_departments"))
