"""Enrollment of unknown faces into the gallery."""

from lumio.enrollment.flow import EnrollmentFlow, EnrollmentSession, EnrollmentState

__all__ = ["EnrollmentFlow", "EnrollmentSession", "EnrollmentState"]
