from consult_sync.models.audit import AuditEntry
from consult_sync.models.consultation import Consultation, ConsultationStatus
from consult_sync.models.student import Student

__all__ = ["AuditEntry", "Consultation", "ConsultationStatus", "Student"]
