"""
FastAPI API layer for the landmark pipeline.

Exposes:
- `/analyze`         : JSON endpoint taking a base64 image
- `/analyze/upload`  : Multipart file upload
- `/status`          : Current phase, failure message and result
- `/reset`           : Dismiss the result or error
- `/audio`           : Narration as a playable clip
- `/graph/ascii`     : ASCII diagram of the LangGraph pipeline
- `/graph/mermaid`   : Mermaid graph source for visualization
- `/health`          : Basic health check
"""
