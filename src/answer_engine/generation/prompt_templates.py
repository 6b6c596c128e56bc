"""All prompt templates for answer generation."""

SUMMARIES_ONLY_POLICY = (
    "Policy: summaries only. Do not generate action plans, implementation steps, or task lists."
)

ASK_INSTRUCTION = "Provide a grounded summary answer followed by 2-4 cited bullets."

SUMMARIZE_INSTRUCTION = (
    "Create a concise executive summary in 4-6 bullets with key points, owners, and risks, "
    "all grounded in citations."
)

TRACE_INSTRUCTION = (
    "Provide an evidence trace summary. Map claims to sources clearly, keep output concise, "
    "and avoid prescriptive next steps."
)

MODE_INSTRUCTIONS = {
    "ask": ASK_INSTRUCTION,
    "summarize": SUMMARIZE_INSTRUCTION,
    "trace": TRACE_INSTRUCTION,
}

STRICT_GROUNDING_SUFFIX = (
    "Strict grounding: include only claims supported by context; if evidence is insufficient, "
    "say so explicitly. Keep response summary-only."
)

ANSWER_SYSTEM = """You answer questions about an organization's internal knowledge.
Rules:
- Answer only using the provided context chunks.
- Include citations for every claim, referencing chunk ids from the context.
- If the context does not contain enough information, say so clearly.
- Never make up information not present in the context."""

ANSWER_PROMPT = """{question}

Context:
{context_block}

Return a JSON object with keys:
- "answer": the answer text
- "citations": list of {{"chunk_id", "doc_version_id", "source_url", "start_offset", "end_offset"}}
- "confidence": float between 0.0 and 1.0
- "source_score": float between 0 and 100"""


def augment_question_for_mode(query: str, mode: str) -> str:
    instruction = MODE_INSTRUCTIONS.get(mode, ASK_INSTRUCTION)
    return f"{instruction}\n{SUMMARIES_ONLY_POLICY}\nQuestion: {query}"


def strict_grounding_prompt(question: str) -> str:
    return f"{question}\n\n{STRICT_GROUNDING_SUFFIX}"


def format_context_block(chunks: list) -> str:
    """Format context chunks with their ids and trust scores for the prompt."""
    return "\n\n".join(
        f"chunk:{c.chunk_id} version:{c.doc_version_id} url:{c.source_url} "
        f"score:{c.source_score:g}\n{c.text}"
        for c in chunks
    )
