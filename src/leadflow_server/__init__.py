"""leadflow_server — FastAPI HTTP surface for the conversation engine."""
