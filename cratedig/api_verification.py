"""
api_verification.py - Connectivity and API key checks for Cratedig
"""

import asyncio

import aiohttp
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cratedig.__version__ import __version__
from cratedig.config import CratedigConfig

UA = f"Cratedig/{__version__}"

console = Console()


def _invalid_key_msg(detail: str) -> str:
    """Generate standardized invalid API key message"""
    return f"Invalid API key - {detail}"


async def verify_musicbrainz(session, base_url: str, user_agent: str = "", timeout=10):
    """Check that the MusicBrainz web service answers a one-row artist search"""
    headers = {"User-Agent": user_agent or UA, "Accept": "application/json"}
    api_url = f"{base_url}/artist"
    params = {"query": "artist:test", "limit": "1", "fmt": "json"}

    async with session.get(api_url, headers=headers, params=params, timeout=timeout) as response:
        if response.status != 200:
            return "MusicBrainz", False, f"Unexpected response - {response.status} {response.reason}"

        data = await response.json()
        if isinstance(data, dict) and "artists" in data:
            return "MusicBrainz", True, f"Reachable ({data.get('count', 0)} artists indexed for probe)"
        return "MusicBrainz", False, "Unexpected payload shape"


async def verify_slskd(session, url: str, api_key: str, timeout=10):
    """Verify the slskd API key and report the Soulseek login"""
    headers = {"X-API-Key": api_key, "Accept": "application/json"}
    api_url = f"{url}/api/v0/application"

    async with session.get(api_url, headers=headers, timeout=timeout) as response:
        if response.status in (401, 403):
            return "slskd", False, _invalid_key_msg(f"{response.status} {response.reason}")
        if response.status != 200:
            return "slskd", False, f"Unexpected response - {response.status} {response.reason}"

        data = await response.json()
        server = data.get("server") if isinstance(data, dict) else None
        if isinstance(server, dict) and server.get("username"):
            state = server.get("state") or "unknown state"
            return "slskd", True, f"Hello {server['username']} ({state})"
        return "slskd", True, "API key accepted"


async def verify_with_retry(verify_func, service_name, *args, max_retries=2, timeout=10):
    """Wrapper to add retry logic with exponential backoff"""
    for attempt in range(max_retries + 1):
        try:
            return await verify_func(*args, timeout=timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            if attempt == max_retries:
                return service_name, False, f"Connection failed after {max_retries + 1} attempts"

            delay = 1 * (2 ** attempt)
            console.print(f"[yellow]Retrying {service_name} in {delay}s...[/yellow]")
            await asyncio.sleep(delay)
        except ValueError as e:
            return service_name, False, f"Unreadable response: {type(e).__name__}: {e}"
    return service_name, False, "No attempt made"


async def verify_services(config: CratedigConfig) -> bool:
    """Verify catalog reachability and the slskd API key"""
    console.print("[cyan][INFO][/cyan] Verifying services...")

    session_timeout = aiohttp.ClientTimeout(total=40)
    async with aiohttp.ClientSession(headers={"User-Agent": UA}, timeout=session_timeout) as session:
        tasks = [
            verify_with_retry(
                verify_musicbrainz,
                "MusicBrainz",
                session,
                config.catalog.base_url,
                config.catalog.user_agent,
            )
        ]
        if config.has_source_config():
            tasks.append(
                verify_with_retry(verify_slskd, "slskd", session, config.source.url, config.source.api_key)
            )

        results = await asyncio.gather(*tasks)

    table = Table(title="Service Verification Results")
    table.add_column("Service", style="cyan", no_wrap=True)
    table.add_column("Status", style="bold", no_wrap=True)
    table.add_column("Details", style="yellow")

    for service, status, details in results:
        status_str = "[green]✓ Valid[/green]" if status else "[red]✗ Invalid[/red]"
        if details:
            details = escape(str(details).strip()[:100])
        table.add_row(service, status_str, details or "")

    if not config.has_source_config():
        table.add_row("slskd", "[yellow]⚠ Warning[/yellow]", "No slskd url/api_key configured")

    console.print(table)

    return config.has_source_config() and all(status for _, status, _ in results)
