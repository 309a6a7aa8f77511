"""MindMesh pipeline services.

Each service owns one stage of the message pipeline:
- emotion_service: text -> emotional signal (model first, lexicon fallback)
- context_service: short-term + long-term context retrieval, memory writes
- recommendation_engine: pure decision policy with crisis override
- safety_service: deduplicated therapist alerts
- response_service: reply generation with templated fallback
- pipeline: state machine, blocking and streaming execution
"""
