VERSION = "0.3.0"

# Schema version of a stored permission record. Bump together with a new
# directory under goalshare/schemas/ and a PermissionMigration step.
APP_SCHEMA_VERSION = "1.0.0"
