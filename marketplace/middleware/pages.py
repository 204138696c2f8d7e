"""Server-rendered terminal pages for the tenant resolver."""

from html import escape

from fastapi.responses import HTMLResponse

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<main>
<h1>{title}</h1>
<p>{message}</p>
</main>
</body>
</html>
"""


def tenant_not_found_page(subdomain: str, base_domain: str) -> HTMLResponse:
    host = escape(f"{subdomain}.{base_domain}")
    return HTMLResponse(
        _PAGE.format(
            title="Marketplace not registered",
            message=f"No marketplace is registered at <strong>{host}</strong>. "
            "Check the address or contact your institution's administrator.",
        ),
        status_code=404,
        headers={"X-Tenant-Error": "not-registered"},
    )


def tenant_unavailable_page(display_name: str) -> HTMLResponse:
    return HTMLResponse(
        _PAGE.format(
            title="Temporarily unavailable",
            message=f"{escape(display_name)} is temporarily unavailable. Please try again later.",
        ),
        status_code=503,
        headers={"X-Tenant-Error": "unavailable"},
    )
