# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Run the Notiflow API server.

Usage:
    python -m notiflow
"""

import uvicorn

from notiflow.core.config import get_settings


def main() -> None:
    """Serve the API with the pipeline's workers running in-process."""
    settings = get_settings()
    uvicorn.run(
        "notiflow.api.app:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
