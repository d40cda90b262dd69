from __future__ import annotations

import logging

from atenea.application.container import build_container
from atenea.config import get_app_paths, load_backend_settings
from atenea.logging_config import setup_logging

log = logging.getLogger(__name__)


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    settings = load_backend_settings()
    container = build_container(paths.db_path, settings=settings)
    container.vouchers.expire_overdue()
    container.repo.refresh()

    log.info(
        "session_started backend=%s role=%s sales=%s inventory=%s vouchers=%s clients=%s",
        settings.kind,
        container.identity.role if container.identity else "owner",
        len(container.repo.sales),
        len(container.repo.inventory),
        len(container.repo.vouchers),
        len(container.repo.clients),
    )


if __name__ == "__main__":
    main()
