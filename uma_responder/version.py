UMA_PROTOCOL_VERSION = "1.0"
