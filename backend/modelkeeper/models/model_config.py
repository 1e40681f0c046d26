from pydantic import BaseModel, ConfigDict

from modelkeeper.models.asset import AssetRole

# Field holding the active descriptor id for each role
ROLE_FIELDS: dict[AssetRole, str] = {
    AssetRole.VISION: "active_model_id",
    AssetRole.EMBEDDING: "active_embedding_model_id",
    AssetRole.RERANKER: "active_reranker_model_id",
    AssetRole.SPEECH: "active_audio_model_id",
    AssetRole.COMPLETION: "active_completion_model_id",
}

# Used when a role field is empty or names an id the catalog does not know
DEFAULT_ROLE_IDS: dict[AssetRole, str | None] = {
    AssetRole.VISION: "vlm",
    AssetRole.EMBEDDING: "embedding-q4",
    AssetRole.RERANKER: "reranker",
    AssetRole.SPEECH: "whisper-small",
    AssetRole.COMPLETION: None,
}


class ModelConfig(BaseModel):
    active_model_id: str = "vlm"
    active_embedding_model_id: str = "embedding-q4"
    active_reranker_model_id: str = "reranker"
    active_audio_model_id: str = "whisper-small"
    active_completion_model_id: str | None = None
    context_size: int = 8192
    vision_max_pixels: int = 1003520
    video_max_pixels: int = 307200  # ~640x480
    pdf_one_chunk_per_page: bool = True
    summary_max_tokens: int = 256
    search_result_limit: int = 15
    qa_context_limit: int = 5
    max_snippet_length: int = 2000
    embed_batch_size: int = 10
    embed_batch_delay_ms: int = 10
    vision_batch_delay_ms: int = 200
    debug_mode: bool = False


class ModelConfigUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    active_model_id: str | None = None
    active_embedding_model_id: str | None = None
    active_reranker_model_id: str | None = None
    active_audio_model_id: str | None = None
    active_completion_model_id: str | None = None
    context_size: int | None = None
    vision_max_pixels: int | None = None
    video_max_pixels: int | None = None
    pdf_one_chunk_per_page: bool | None = None
    summary_max_tokens: int | None = None
    search_result_limit: int | None = None
    qa_context_limit: int | None = None
    max_snippet_length: int | None = None
    embed_batch_size: int | None = None
    embed_batch_delay_ms: int | None = None
    vision_batch_delay_ms: int | None = None
    debug_mode: bool | None = None
