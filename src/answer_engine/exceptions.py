"""Custom exception hierarchy for the answer engine."""


class AnswerEngineError(Exception):
    """Base exception for all answer engine errors."""


class ValidationError(AnswerEngineError):
    """Malformed input to a pure scoring or fusion function."""


class EmbeddingError(AnswerEngineError):
    """Error generating embeddings."""


class RetrievalError(AnswerEngineError):
    """The chunk store could not be searched."""


class GenerationError(AnswerEngineError):
    """The language model provider failed."""


class GroundingError(AnswerEngineError):
    """No citation survived the full answer pipeline."""


class PersistenceError(AnswerEngineError):
    """Error writing an answer exchange to storage."""


class ConfigurationError(AnswerEngineError):
    """Error in system configuration."""
