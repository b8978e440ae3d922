from __future__ import annotations

SERVER_PORT = 13000

MAX_RETRIES = 10
RETRY_INTERVAL_S = 1.0
RESPONSE_TIMEOUT_S = RETRY_INTERVAL_S

MAX_PENDING_CONNECTIONS = 5

# largest message either side accepts; anything bigger is rejected, never truncated
MAX_MESSAGE_SIZE = 1023

ACK_START = "\nACK_START"
ACK_END = "\nACK_END"

ENCODING = "utf-8"
