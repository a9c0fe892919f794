"""AI image variations for normalized PNG assets.

This module wraps OpenAI's image variation endpoint. A variation request
returns a locator (a short-lived URL) rather than the image itself, so the
bytes are fetched with a second HTTP request. The tree walker writes the
result next to the source image with a `.png` extension.

See Also:
    `doc_renew.images.normalize_image`: Produces the PNG input for a variation.
    `doc_renew.walker.TreeWalker`: Calls `create_variation` for image nodes.
"""

import base64
import logging

import httpx
from openai import AsyncOpenAI, OpenAIError

from doc_renew.errors import CapabilityError

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "dall-e-2"
DEFAULT_IMAGE_SIZE = "256x256"
FETCH_TIMEOUT = 60.0


async def fetch_image(url: str, timeout: float = FETCH_TIMEOUT) -> bytes:
    """Download the bytes behind an image locator.

    Raises:
        CapabilityError: On any transport error or non-2xx status.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise CapabilityError(f"Failed to download generated image: {e}") from e
    logger.debug(f"Downloaded {len(response.content)} bytes from image locator")
    return response.content


async def create_variation(png: bytes, model: str = DEFAULT_IMAGE_MODEL, size: str = DEFAULT_IMAGE_SIZE,
                           client: AsyncOpenAI = None) -> bytes:
    """Request one AI-generated variation of a PNG image and return its bytes.

    Args:
        png: Normalized PNG bytes of the source image.
        model: The OpenAI image model to use.
        size: Output resolution, e.g. `"256x256"`.
        client: Optional preconfigured client. A new `AsyncOpenAI` (reading
            `OPENAI_API_KEY` from the environment) is created if omitted.

    Returns:
        The generated image's bytes.

    Raises:
        CapabilityError: If the API call fails, the response carries no image,
            or the image cannot be fetched.
    """
    try:
        client = client or AsyncOpenAI()
        response = await client.images.create_variation(
            model=model,
            image=("image.png", png, "image/png"),
            n=1,
            size=size,
        )
    except OpenAIError as e:
        raise CapabilityError(f"Image variation request failed: {e}") from e

    if not getattr(response, "data", None):
        raise CapabilityError("Image variation response contained no images.")

    item = response.data[0]
    if getattr(item, "b64_json", None):
        return base64.b64decode(item.b64_json)
    if getattr(item, "url", None):
        return await fetch_image(item.url)
    raise CapabilityError("Image variation response had neither a URL nor inline data.")

