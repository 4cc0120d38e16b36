from app.core.models.class_model import SchoolClass
from app.core.models.student import Student
from app.core.models.fee_structure import FeeStructure, FeeStructureItem
from app.core.models.fee_structure_history import FeeStructureHistory
from app.core.models.student_fee_history import StudentFeeHistory
from app.core.models.scholarship import ScholarshipAssignment, ScholarshipDefinition
from app.core.models.charge import ChargeAssignment, ChargeDefinition

__all__ = [
    "SchoolClass",
    "Student",
    "FeeStructure",
    "FeeStructureItem",
    "FeeStructureHistory",
    "StudentFeeHistory",
    "ScholarshipDefinition",
    "ScholarshipAssignment",
    "ChargeDefinition",
    "ChargeAssignment",
]
