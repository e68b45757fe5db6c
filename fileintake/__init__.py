"""FileIntake - single-file upload service with local or S3 storage."""
