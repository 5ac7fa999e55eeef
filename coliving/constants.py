"""Global constants for the coliving application."""

# Collection names (prefixed with the configured namespace at runtime)
GROUPS_COLLECTION = "groups"
GROUP_MEMBERS_SUBCOLLECTION = "members"
INVITATIONS_COLLECTION = "groupInvites"
NOTIFICATIONS_COLLECTION = "notifications"
PROFILES_COLLECTION = "profiles"
SETTINGS_COLLECTION = "settings"

# Settings documents
GROUP_SETTINGS_DOC = "groups"
GROUP_PROPERTIES_DOC = "groupProperties"

# Group defaults used when the settings document cannot be read
DEFAULT_GROUP_TIMEOUT_HOURS = 24
DEFAULT_THRESHOLD_PERCENT = 40
MIN_REQUIRED_MEMBERS = 2

# Store access
WRITE_TIMEOUT_SECONDS = 10.0
MAX_WRITE_ATTEMPTS = 2
FIRESTORE_BATCH_LIMIT = 500

# Expiration monitor
EXPIRATION_TICK_SECONDS = 1.0

# Profile roles
ROLE_ADMIN = "admin"
