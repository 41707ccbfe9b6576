ADMIN_ROLE_ID = 1
PROTECTED_ROLE_IDS = (1, 4)

# (id, name, assess_fines, change_rates, change_members)
DEFAULT_BOARD_ROLES = [
    (1, "Administrator", True, True, True),
    (2, "President", True, True, True),
    (3, "Treasurer", False, True, False),
    (4, "Secretary", False, False, True),
    (5, "Member at Large", True, False, False),
]

BOARD_CAPABILITIES = ("ASSESS_FINES", "CHANGE_RATES", "CHANGE_MEMBERS")

REGULAR_ASSESSMENT_TYPE = "Regular Assessment"
DEFAULT_ASSESSMENT_TYPES = [REGULAR_ASSESSMENT_TYPE, "Special Assessment"]

CHARGE_DUE_DAYS = 30

ANNOUNCEMENT_TYPES = ("ANNOUNCEMENT", "NEWS", "EVENT")
ANNOUNCEMENT_STATUSES = ("DRAFT", "SCHEDULED", "PUBLISHED")
MAX_ANNOUNCEMENT_IMAGE_BYTES = 10 * 1024 * 1024

DOCUMENT_CATEGORIES = (
    "Governing Documents",
    "Meeting Minutes",
    "Financial Reports",
    "Forms",
    "Newsletters",
    "Other",
)
MAX_DOCUMENT_BYTES = 25 * 1024 * 1024
ALLOWED_DOCUMENT_TYPES = {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/pdf",
    "application/x-pdf",
    "text/plain",
    "application/doc",
    "application/ms-doc",
    "application/excel",
    "application/x-excel",
    "application/x-msexcel",
    "application/mspowerpoint",
    "application/powerpoint",
    "application/x-mspowerpoint",
}

SURVEY_STATUSES = ("ACTIVE", "INACTIVE")
SURVEY_ANSWER_SLOTS = 4

PAST_DUE_REMINDER_SUBJECT = "Past Due Balance Reminder"
PAST_DUE_REMINDER_INTERVAL_DAYS = 7
