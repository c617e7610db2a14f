"""LLM provider client and request pacing."""

from .client import VertexRestClient, extract_json_object
from .request_queue import RequestQueue, retry_with_backoff, get_default_queue

__all__ = ["VertexRestClient", "extract_json_object", "RequestQueue", "retry_with_backoff", "get_default_queue"]
