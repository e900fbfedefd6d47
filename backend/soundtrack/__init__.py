"""SoundTrack Academy backend package.

Teachers manage students, assign techniques and repertoire for spaced
review, and log lessons. The FastAPI application lives in `main`;
persistence, services and the review scheduling engine live in their
own modules.
"""
