# src/api/__init__.py
# =====================
# API Layer — Scribe
#
# Responsibility:
#   - Expose POST /api/upload (multipart/form-data, audio only)
#   - Serve artifacts under /audio and /transcriptions
#   - Return the transcript and artifact URLs as JSON
