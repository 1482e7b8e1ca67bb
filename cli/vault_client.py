"""HTTP client for communicating with the Uploader service."""

import re
import time
import uuid
from pathlib import Path
from typing import Optional

import httpx

from common.logging_config import get_logger
from cli.config import Config
from cli.utils import FolderUploadBody, collect_folder_files, format_file_size

logger = get_logger(__name__)

_DISPOSITION_FILENAME = re.compile(r'filename="([^"]*)"')


class VaultClient:
    """HTTP client for the Uploader API with retry logic and error handling."""

    def __init__(self, config: Config):
        """
        Initialize uploader client.

        Args:
            config: Configuration instance
        """
        self.config = config
        self.session = httpx.Client(
            base_url=config.get_base_url(),
            timeout=config.get_timeout()
        )
        self.request_id = None
        logger.info(f"Initialized VaultClient [base_url={config.get_base_url()}]")

    def close(self) -> None:
        self.session.close()

    def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic on 5xx errors and network failures.

        Args:
            method: HTTP method (GET, POST, DELETE, etc.)
            endpoint: API endpoint path
            max_retries: Max retry attempts (uses config default if None)
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response object

        Raises:
            ConnectionError: If max retries exceeded or connection fails
        """
        retry_config = self.config.get_retry_config()
        max_retries = max_retries if max_retries is not None else retry_config['max_retries']
        backoff = retry_config['retry_backoff_multiplier']

        last_exception = None

        self.request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})
        kwargs['headers']['X-Request-ID'] = self.request_id

        logger.debug(f"Making request: {method} {endpoint} [request_id={self.request_id}]")

        for attempt in range(max_retries + 1):
            try:
                response = self.session.request(method, endpoint, **kwargs)

                logger.debug(
                    f"Response received: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
                )

                if 400 <= response.status_code < 500:
                    logger.warning(
                        f"Client error: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
                    )
                    return response

                if response.status_code >= 500 and attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Server error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} status={response.status_code}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    time.sleep(delay)
                    continue

                return response

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_exception = e
                if attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    time.sleep(delay)
                    continue
                logger.error(
                    f"Network error (max retries exceeded): {method} {endpoint} error={e} [request_id={self.request_id}]"
                )

        if isinstance(last_exception, httpx.TimeoutException):
            raise ConnectionError("Request timed out. Server may be overloaded.")
        raise ConnectionError("Cannot connect to uploader server. Is it running?")

    def _format_error(self, response: httpx.Response) -> str:
        """
        Map HTTP errors to user-friendly messages.

        Args:
            response: HTTP response object

        Returns:
            User-friendly error message
        """
        try:
            error_data = response.json()
            detail = error_data.get('detail', 'Unknown error')
            code = error_data.get('code', 'UNKNOWN')
        except ValueError:
            detail = response.text if response.text else 'Unknown error'
            code = 'UNKNOWN'

        error_messages = {
            'FILE_NOT_FOUND': 'File not found on server.',
            'MISSING_PATH': 'Upload rejected: a file had a missing or unsafe path.',
            'MALFORMED_UPLOAD': 'Upload rejected: the server could not read the request body.',
            'UPLOAD_TOO_LARGE': 'Upload exceeds the server size limit.',
            'ALL_REPLICAS_UNAVAILABLE': 'Download failed from all nodes. Try again later.',
            'PUBLISH_FAILED': f'Cluster rejected the upload: {detail}',
        }

        if code in error_messages:
            return error_messages[code]

        status_messages = {
            400: 'Bad request',
            404: 'Not found',
            413: 'Upload too large',
            422: 'Invalid request parameters',
            500: 'Server error',
            503: 'Service unavailable',
        }

        message = status_messages.get(response.status_code, detail)
        if message == 'Bad request' and detail != 'Unknown error':
            message = f"{message}: {detail}"
        return f"{message} (Code: {code})" if code != 'UNKNOWN' else message

    def upload_folder(self, folder: str, folder_name: Optional[str] = None) -> str:
        """
        Upload a local directory as one tree.

        Args:
            folder: Local directory to upload
            folder_name: Root name on the cluster (defaults to the directory name)

        Returns:
            Result message with the root CID
        """
        root = Path(folder).expanduser()
        if not root.is_dir():
            return f"Error: Not a directory: {folder}"

        collected = collect_folder_files(root)
        if not collected:
            return f"Error: No files found in {folder}"

        name = folder_name or root.resolve().name
        try:
            body = FolderUploadBody(name, collected)
        except OSError as e:
            return f"Error reading {folder}: {e}"

        total = body.total_file_bytes
        logger.info(f"Uploading folder {root} as '{name}' [files={len(collected)}] [bytes={total}]")

        timeout = httpx.Timeout(self.config.get_timeout(), read=self.config.get_upload_timeout())

        try:
            response = self.session.post(
                '/upload-folder',
                content=body,
                headers={
                    'Content-Type': body.content_type,
                    'Content-Length': str(len(body)),
                    'X-Request-ID': str(uuid.uuid4()),
                },
                timeout=timeout,
            )
        except httpx.ConnectError:
            return "Error: Cannot connect to uploader server"
        except httpx.TimeoutException:
            return f"Error: Upload timed out ({format_file_size(total)})"
        except OSError as e:
            return f"Error reading {folder}: {e}"
        except httpx.HTTPError as e:
            return f"Error uploading {folder}: {e}"

        if response.status_code == 200:
            cid = response.json()['cid']
            return (
                f"Uploaded: {name} ({len(collected)} file(s), {format_file_size(total)})\n"
                f"CID: {cid}"
            )
        return f"Error uploading {folder}: {self._format_error(response)}"

    def download(self, cid: str, output: Optional[str] = None, archive_format: Optional[str] = None) -> str:
        """
        Download content by CID to a local file.

        Args:
            cid: Content identifier
            output: Destination file or directory (defaults to the current directory)
            archive_format: Optional gateway export format ("tar" or "car")

        Returns:
            Result message
        """
        params = {'format': archive_format} if archive_format else None

        try:
            with self.session.stream('GET', f'/download/{cid}', params=params) as response:
                if response.status_code != 200:
                    response.read()
                    return f"Error: {self._format_error(response)}"

                match = _DISPOSITION_FILENAME.search(response.headers.get('content-disposition', ''))
                filename = Path(match.group(1)).name if match and match.group(1) else cid

                destination = Path(output).expanduser() if output else Path.cwd()
                if destination.is_dir():
                    destination = destination / filename
                destination.parent.mkdir(parents=True, exist_ok=True)

                written = 0
                with open(destination, 'wb') as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
                        written += len(chunk)
        except httpx.ConnectError:
            return "Error: Cannot connect to uploader server"
        except httpx.TimeoutException:
            return "Error: Download timed out"

        logger.info(f"Downloaded {cid} to {destination} [bytes={written}]")
        return f"Downloaded: {destination} ({format_file_size(written)})"

    def list_files(self, limit: Optional[int] = None) -> str:
        """
        List recent uploads with replication status.

        Args:
            limit: Maximum number of records

        Returns:
            Formatted list of uploads
        """
        params = {'limit': limit} if limit else None

        try:
            response = self._request_with_retry('GET', '/files', params=params)
        except ConnectionError as e:
            return f"Error: {e}"

        if response.status_code != 200:
            return f"Error: {self._format_error(response)}"

        files = response.json()
        if not files:
            return "No uploads found."

        output = [f"Found {len(files)} upload(s):\n"]
        for record in files:
            output.append(
                f"  - {record['filename']} (CID: {record['cid']})\n"
                f"    Size: {format_file_size(record['size'])}\n"
                f"    Uploaded: {record['uploadedAt']} from {record['ip']}\n"
                f"    Replication: {_describe_replication(record.get('replication'))}"
            )
        return '\n'.join(output)

    def delete(self, cid: str) -> str:
        """
        Delete an upload record and unpin its CID.

        Args:
            cid: Content identifier

        Returns:
            Result message
        """
        try:
            response = self._request_with_retry('DELETE', f'/files/{cid}')
        except ConnectionError as e:
            return f"Error: {e}"

        if response.status_code == 200:
            return f"Deleted: {cid}"
        return f"Error: {self._format_error(response)}"


def _describe_replication(replication) -> str:
    if not isinstance(replication, dict):
        return "unknown"
    if 'error' in replication:
        return replication['error']

    peer_map = replication.get('peer_map') or {}
    if not peer_map:
        return "no peers reported"
    pinned = sum(1 for peer in peer_map.values() if isinstance(peer, dict) and peer.get('status') == 'pinned')
    return f"{pinned}/{len(peer_map)} peers pinned"
