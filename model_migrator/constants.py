"""Centralized constants for the model migrator."""

# Provider wire format
API_KEY_HEADER = "Ocp-Apim-Subscription-Key"
OPERATION_LOCATION_HEADER = "Operation-Location"
CONTENT_TYPE_JSON = "application/json"
API_VERSION_PARAM = "api-version"
PREBUILT_MODEL_PREFIX = "prebuilt-"

# Provider response fields
MODEL_ID = "modelId"
DESCRIPTION = "description"
API_VERSION = "apiVersion"
VALUE = "value"
NEXT_LINK = "nextLink"
STATUS = "status"
PERCENT_COMPLETED = "percentCompleted"
ERROR = "error"

# Operation statuses reported while polling
OPERATION_FAILED_STATUSES = frozenset({"failed", "canceled", "cancelled"})

# Management plane
MANAGEMENT_URL = "https://management.azure.com"
MANAGEMENT_ACCOUNTS_API_VERSION = "2023-05-01"
MANAGEMENT_SUBSCRIPTIONS_API_VERSION = "2022-12-01"
ACCOUNT_PROVIDER_PATH = "providers/Microsoft.CognitiveServices/accounts"

# Environment Variables
ENV_CONFIG_PATH = "MODEL_MIGRATOR_CONFIG"
ENV_CONFIG_DIR = "MODEL_MIGRATOR_CONFIG_DIR"
ENV_LOG_DIR = "LOG_DIR"

# Logging
LOG_FILE_NAME = "migrator.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Security-related field names for filtering
SECURITY_FIELDS = [
    "api_key",
    "key",
    "key1",
    "key2",
    "token",
    "access_token",
    "authorization",
    "accessToken",
]
