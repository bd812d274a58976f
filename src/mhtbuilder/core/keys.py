"""Shared header keys to avoid magic strings across mhtbuilder modules."""

from __future__ import annotations

# Archive (RFC2557 / MIME) header names
K_FROM = "From"
K_SUBJECT = "Subject"
K_DATE = "Date"
K_MIME_VERSION = "MIME-Version"
K_CONTENT_TYPE = "Content-Type"
K_CONTENT_TRANSFER_ENCODING = "Content-Transfer-Encoding"
K_CONTENT_LOCATION = "Content-Location"
K_X_MIMEOLE = "X-MimeOLE"

# HTTP request/response header names
K_USER_AGENT = "User-Agent"
K_ACCEPT_ENCODING = "Accept-Encoding"
K_IF_MODIFIED_SINCE = "If-Modified-Since"

# Transfer encodings
K_QUOTED_PRINTABLE = "quoted-printable"
K_BASE64 = "base64"
