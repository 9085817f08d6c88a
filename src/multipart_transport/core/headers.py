"""User-metadata keys written on completed objects."""

# Marks objects produced by this transport.
TRANSPORT_ORIGIN = "multipart-transport"

META_FROM = "from"
META_MODIFIED_TIME = "modified-time"
META_MD5 = "content-md5"

CONTENT_LENGTH = "Content-Length"
CONTENT_TYPE = "Content-Type"
OCTET_STREAM = "application/octet-stream"
