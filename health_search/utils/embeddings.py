"""
Embedding generation utilities
"""
import httpx
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

OPENAI_EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"


async def get_embedding(
    text: str,
    api_key: str,
    model: str,
    dimensions: Optional[int] = None,
    timeout: float = 30.0,
    client: Optional[httpx.AsyncClient] = None,
) -> List[float]:
    """
    Generate embedding for text using OpenAI API

    Args:
        text: Text to embed
        api_key: OpenAI API key
        model: Embedding model name
        dimensions: Expected vector size (mismatch is logged, not fatal)
        client: Shared client; a short-lived one is created when omitted

    Returns:
        Embedding vector as list of floats
    """
    async def _post(http: httpx.AsyncClient) -> httpx.Response:
        return await http.post(
            OPENAI_EMBEDDINGS_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json"
            },
            json={"input": text, "model": model},
            timeout=timeout
        )

    try:
        if client is None:
            async with httpx.AsyncClient() as http:
                response = await _post(http)
        else:
            response = await _post(client)

        response.raise_for_status()
        embedding = response.json()["data"][0]["embedding"]

        if dimensions and len(embedding) != dimensions:
            logger.warning(
                f"Embedding dimension mismatch: got {len(embedding)}, "
                f"expected {dimensions}"
            )

        return embedding

    except httpx.HTTPError as e:
        logger.error(f"HTTP error generating embedding: {e}")
        raise
    except (KeyError, IndexError, ValueError) as e:
        logger.error(f"Malformed embedding response: {e}")
        raise
