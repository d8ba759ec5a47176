from typing import Optional

import uvicorn


def run(
    app_path: str,
    port: int,
    *,
    host: str = "0.0.0.0",
    log_level: str = "info",
    workers: Optional[int] = None,
) -> None:
    """
    Serve *app_path* ("module:attr") with uvicorn. Access logging stays off;
    the request middleware already writes one summary line per request.
    """
    uvicorn.run(
        app_path,
        host=host,
        port=int(port),
        log_level=log_level.lower(),
        access_log=False,
        log_config=None,
        workers=workers,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


__all__ = ["run"]
