NO_RESPONSE_REPLY = "🤖 No response from Gemini."
RATE_LIMITED_REPLY = "⚠️ Too many requests to Gemini. Please wait and try again."
UNKNOWN_ERROR = "Unknown error."
MISSING_API_KEY = "❌ Gemini API key not found. Please check your .env file."

ERROR_REPLY_TEMPLATE = "❌ Error {status}: {message}"
EXCEPTION_REPLY_TEMPLATE = "❌ Exception: {detail}"

SAVE_ERROR_TEMPLATE = "❌ Error saving message: {detail}"
LOAD_ERROR_TEMPLATE = "❌ Error loading messages: {detail}"
UPDATE_ERROR_TEMPLATE = "❌ Error updating message: {detail}"
DELETE_ERROR_TEMPLATE = "❌ Error deleting message: {detail}"
DELETE_ALL_ERROR_TEMPLATE = "❌ Error deleting all messages: {detail}"

DAY_KEY_FORMAT = "%Y-%m-%d"
SHORT_DATE_FORMAT = "%b %d"

NO_ACTIVITY = "No messages yet"
STATUS_THINKING = "AI is thinking..."
STATUS_EMPTY = "Start a conversation"
STATUS_ONLINE_TEMPLATE = "Online • {count} conversations"
