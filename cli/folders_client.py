"""CLI client for a running story folders server."""

from __future__ import annotations

import argparse
import sys
from typing import Any
from urllib.parse import urlparse

try:
    import httpx
except ImportError:
    print("Error: httpx is required. Install with: pip install httpx")
    sys.exit(1)

DEFAULT_SERVER = "http://127.0.0.1:8000"

_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class FoldersClient:
    """Client for the story folders HTTP API."""

    def __init__(self, server_url: str, client: httpx.Client | None = None) -> None:
        self.server_url = server_url.rstrip("/")
        self.client = client or httpx.Client(base_url=self.server_url, timeout=60.0)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> FoldersClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def sites(self) -> list[dict[str, Any]]:
        resp = self.client.get("/api/sites")
        resp.raise_for_status()
        result: list[dict[str, Any]] = resp.json()
        return result

    def resolve_site(self, site_uuid: str | None) -> str:
        """Return the given site UUID, or the first site's when none is given."""
        if site_uuid:
            return site_uuid
        sites = self.sites()
        if not sites:
            raise ValueError("The server has no sites")
        first: str = sites[0]["uuid"]
        return first

    def status(self, site_uuid: str) -> dict[str, Any]:
        """Show what a reconcile pass would repair."""
        resp = self.client.get(f"/api/sites/{site_uuid}/reconcile")
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def reconcile(self, site_uuid: str) -> dict[str, Any]:
        resp = self.client.post(f"/api/sites/{site_uuid}/reconcile")
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def list_folders(self, site_uuid: str) -> list[dict[str, Any]]:
        resp = self.client.get(f"/api/sites/{site_uuid}/folders")
        resp.raise_for_status()
        result: list[dict[str, Any]] = resp.json()
        return result

    def create_folder(self, site_uuid: str, name: str) -> dict[str, Any]:
        resp = self.client.post(f"/api/sites/{site_uuid}/folders", json={"name": name})
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def rename_folder(self, folder_uuid: str, name: str) -> dict[str, Any]:
        resp = self.client.patch(f"/api/folders/{folder_uuid}", json={"name": name})
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def delete_folder(self, folder_uuid: str) -> None:
        resp = self.client.delete(f"/api/folders/{folder_uuid}")
        resp.raise_for_status()


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. http://127.0.0.1:8000)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def _print_status(status: dict[str, Any]) -> None:
    if not status.get("has_inconsistencies"):
        print("Folders and records are in sync.")
        return
    print("Out of sync:")
    if status.get("site_folder_missing"):
        print("  Site folder is missing")
    for name in status.get("unregistered", []):
        print(f"    + {name} (unregistered folder)")
    for uuid in status.get("orphaned", []):
        print(f"    - {uuid} (orphaned record)")


def _print_reconcile(result: dict[str, Any]) -> None:
    print(
        f"Reconcile complete. {len(result.get('created', []))} created, "
        f"{len(result.get('deleted', []))} deleted, "
        f"{len(result.get('revived', []))} revived, "
        f"{len(result.get('renamed', []))} renamed, "
        f"{result.get('failed', 0)} failed."
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storyfolders",
        description="Manage story folders on a running story folders server",
    )
    parser.add_argument("--server", "-s", default=DEFAULT_SERVER, help="Server URL")
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )
    parser.add_argument("--site", help="Site UUID (default: the first site)")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("status", help="Show what a reconcile pass would repair")
    subparsers.add_parser("reconcile", help="Repair drift between folders and records")
    subparsers.add_parser("list", help="List story folders")
    create = subparsers.add_parser("create", help="Create a story folder")
    create.add_argument("name")
    rename = subparsers.add_parser("rename", help="Rename a story folder")
    rename.add_argument("uuid")
    rename.add_argument("name")
    delete = subparsers.add_parser("delete", help="Delete a story folder and its files")
    delete.add_argument("uuid")
    return parser


def run(args: argparse.Namespace, client: FoldersClient) -> None:
    """Execute one parsed command against the server."""
    if args.command in {"rename", "delete"}:
        if args.command == "rename":
            folder = client.rename_folder(args.uuid, args.name)
            print(f"Renamed {folder['uuid']} to {folder['name']}")
        else:
            client.delete_folder(args.uuid)
            print(f"Deleted {args.uuid}")
        return

    site_uuid = client.resolve_site(args.site)
    if args.command == "status":
        _print_status(client.status(site_uuid))
    elif args.command == "reconcile":
        _print_reconcile(client.reconcile(site_uuid))
    elif args.command == "list":
        for folder in client.list_folders(site_uuid):
            print(f"{folder['uuid']}  {folder['name']}")
    elif args.command == "create":
        folder = client.create_folder(site_uuid, args.name)
        print(f"Created {folder['uuid']} at {folder.get('path')}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    try:
        server_url = validate_server_url(args.server, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    with FoldersClient(server_url) as client:
        try:
            run(args, client)
        except httpx.HTTPStatusError as exc:
            print(f"Error: Server returned {exc.response.status_code}")
            sys.exit(1)
        except (httpx.HTTPError, ValueError) as exc:
            print(f"Error: {exc}")
            sys.exit(1)


if __name__ == "__main__":
    main()
