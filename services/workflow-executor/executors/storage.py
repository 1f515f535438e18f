"""
Storage node executors.

The file upload and Walrus storage nodes report status and occupy a step in
the run. The file itself is chosen in the node's configuration dialog; at
execution time they hand the context on unchanged.
"""

from __future__ import annotations

from channels.status import FILE_UPLOAD_CHANNEL, WALRUS_NODE_CHANNEL
from executors.base import passthrough_executor

file_upload_executor = passthrough_executor(FILE_UPLOAD_CHANNEL, "file-upload")
walrus_storage_executor = passthrough_executor(WALRUS_NODE_CHANNEL, "walrus-node")
