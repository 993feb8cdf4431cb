"""
Translate pipeline failures that reached a handler with nothing cached into
HTTP errors.
"""

import logging
from contextlib import contextmanager

from fastapi import HTTPException

from vibescan.core.errors import EndpointTimeout, ProviderError, VibeScanError

logger = logging.getLogger(__name__)


@contextmanager
def upstream_errors(context: str):
    try:
        yield
    except EndpointTimeout as e:
        logger.warning("%s: %s", context, e)
        raise HTTPException(status_code=504, detail=str(e))
    except ProviderError as e:
        logger.error("%s: provider %s failed: %s", context, e.provider or "unknown", e)
        raise HTTPException(status_code=502, detail=f"Upstream provider error: {e}")
    except VibeScanError as e:
        logger.error("%s failed: %s", context, e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to load {context}")
