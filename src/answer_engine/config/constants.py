"""Fixed values shared across the engine."""

SCORE_MODEL_VERSION = "v1.0.0"
ANSWER_QUALITY_CONTRACT_VERSION = "v1"

BLOCKED_ANSWER_TEXT = "Insufficient evidence"

# Trust score weights (sum to 1.0)
TRUST_WEIGHT_RECENCY = 0.35
TRUST_WEIGHT_SOURCE_AUTHORITY = 0.25
TRUST_WEIGHT_AUTHOR_AUTHORITY = 0.20
TRUST_WEIGHT_CITATION_COVERAGE = 0.20
RECENCY_HALF_LIFE_HOURS = 24 * 14

# Caller-supplied score fusion
HYBRID_LEXICAL_WEIGHT = 0.45
HYBRID_SEMANTIC_WEIGHT = 0.55
HYBRID_RELEVANCE_WEIGHT = 0.7
HYBRID_TRUST_WEIGHT = 0.3

CITATION_EXCERPT_CHARS = 220
EXCERPT_PADDING_CHARS = 90
FALLBACK_CITATION_COUNT = 2
RETRIEVAL_SCORE_TOP_N = 3
DEFAULT_SOURCE_SCORE = 50.0
MIN_SENTENCE_CHARS = 20
MIN_TERM_CHARS = 4

GOOGLE_CONNECTOR_TYPES = frozenset({"google_docs", "google_drive"})
ACL_ENFORCED_CONNECTOR_TYPES = frozenset(
    {"slack", "microsoft_teams", "microsoft_sharepoint", "microsoft_onedrive"}
)
CONNECTOR_TYPES = GOOGLE_CONNECTOR_TYPES | ACL_ENFORCED_CONNECTOR_TYPES

# Job names
JOB_LOW_CONFIDENCE_REVIEW = "low_confidence_review_queue"
JOB_QUALITY_EVAL_LOOP = "quality_eval_loop"

# Usage metering event types
USAGE_SUMMARY_DELIVERED = "summary_delivered"
USAGE_SUMMARY_BLOCKED = "summary_blocked"

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has",
        "have", "he", "in", "is", "it", "its", "of", "on", "or", "she", "that",
        "the", "their", "them", "they", "this", "to", "was", "were", "will",
        "with", "what", "which", "who", "whom", "why", "how", "when", "where",
        "do", "does", "did", "can", "could", "should", "would", "our", "we",
        "you", "your", "i", "me", "my",
    }
)
