"""Command-line entry point: parse options, read the sitemap and run the warmer."""

from __future__ import annotations

import argparse
import ipaddress
import logging
import sys
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests

from .config import (
    DEFAULT_CACHE_STATUS_HEADER,
    DEFAULT_DELAY,
    DEFAULT_PURGE_DELAY,
    DEFAULT_RANGE,
    PURGE_CHOICES,
    USER_AGENT,
    CloudflareCredentials,
    RunConfig,
)
from .sitemap import SITEMAP_TIMEOUT, Sitemap, process_sitemap
from .utils import try_valid_url
from .warmer import Warmer

logger = logging.getLogger("sitemap_warmer")

HEADERS_PREFIX = "--headers."


def to_boolean(value) -> bool:
    return str(value).strip().lower() in ("1", "true")


def to_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def to_ip(value) -> str:
    try:
        return str(ipaddress.ip_address(str(value).strip()))
    except ValueError:
        return ""


def parse_header(value: str) -> Tuple[str, str]:
    name, separator, header_value = value.partition(":")
    if not separator or not name.strip():
        raise argparse.ArgumentTypeError(f"Header must look like 'Name: value', got {value!r}")
    return name.strip().lower(), header_value.strip()


def _add_toggle(parser: argparse.ArgumentParser, *flags: str, help: str) -> None:
    parser.add_argument(
        *flags,
        type=to_boolean,
        nargs="?",
        const=True,
        default=True,
        metavar="BOOL",
        help=help,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitemap-warmer",
        description="Warm up (and optionally purge) a site's cache from its sitemap",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        epilog='Example: sitemap-warmer domain.com --headers.authorization "Bearer secret_token"',
    )
    parser.add_argument("sitemap", help="Domain or sitemap URL (e.g. domain.com)")
    parser.add_argument(
        "-a", "--all",
        type=to_boolean, nargs="?", const=True, default=False, metavar="BOOL",
        help="Warm up all URLs in sitemap, ignores --range",
    )
    parser.add_argument(
        "-r", "--range",
        type=to_int, default=DEFAULT_RANGE,
        help="Only warm up URLs with lastModified newer than this value (in seconds)",
    )
    parser.add_argument(
        "-d", "--delay",
        type=to_int, default=DEFAULT_DELAY,
        help="Delay (in milliseconds) between each warm up call",
    )
    parser.add_argument(
        "-q", "--quiet", "--silent",
        dest="quiet", action="store_true",
        help="Disable debug logging",
    )

    _add_toggle(parser, "--img", "--images", help="Enable images warm up")
    _add_toggle(parser, "--css", help="Enable CSS warm up")
    _add_toggle(parser, "--js", help="Enable JavaScript warm up")
    _add_toggle(parser, "--webp", help="Enable WebP images warm up")
    _add_toggle(parser, "--avif", help="Enable AVIF images warm up")
    _add_toggle(parser, "--brotli", help='Enable Brotli warm up ("Accept-Encoding: gzip, deflate, br")')
    _add_toggle(parser, "--gzip", help='Enable Gzip warm up ("Accept-Encoding: gzip, deflate")')
    _add_toggle(parser, "--deflate", help='Enable Deflate warm up ("Accept-Encoding: deflate")')

    parser.add_argument(
        "-p", "--purge",
        type=to_int, default=0, choices=PURGE_CHOICES,
        help="Purge resources before warm up (0 = no purging, 1 = pages, 2 = pages and images)",
    )
    parser.add_argument(
        "--pd", "--purge_delay",
        dest="purge_delay", type=to_int, default=DEFAULT_PURGE_DELAY,
        help="Delay (in milliseconds) after purging a resource",
    )
    parser.add_argument(
        "--pp", "--purge_path",
        dest="purge_path", default="",
        help="Purge using GET on this path instead of the PURGE method, e.g. https://domain.com/purge/path_to_purge",
    )
    parser.add_argument(
        "--pae", "--purge_all_encodings",
        dest="purge_all_encodings",
        type=to_boolean, nargs="?", const=True, default=False, metavar="BOOL",
        help="Purge once per Accept-Encoding (needed for nginx proxy cache)",
    )
    parser.add_argument(
        "-H", "--header",
        dest="headers", type=parse_header, action="append", default=[],
        help="Custom header sent with every request, as 'Name: value'. Also accepts --headers.NAME VALUE",
    )
    parser.add_argument(
        "--cache_status_header",
        default=DEFAULT_CACHE_STATUS_HEADER,
        help="Response header carrying the cache status (HIT, MISS, BYPASS)",
    )
    parser.add_argument(
        "--ip",
        type=to_ip, default="",
        help="IP to connect to, sending the original Host header and SNI",
    )
    parser.add_argument("--cf_email", "--cloudflare_email", dest="cf_email", default="",
                        help="Cloudflare account email to purge the Cloudflare cache")
    parser.add_argument("--cf_zone", "--cloudflare_zone_id", dest="cf_zone", default="",
                        help="Cloudflare zone id to purge the Cloudflare cache")
    parser.add_argument("--cf_apikey", "--cloudflare_api_key", dest="cf_apikey", default="",
                        help="Cloudflare API key to purge the Cloudflare cache")
    return parser


def split_header_options(argv: Sequence[str]) -> Tuple[Dict[str, str], List[str]]:
    """Pull --headers.NAME VALUE (or --headers.NAME=VALUE) pairs out of argv."""
    headers: Dict[str, str] = {}
    remaining: List[str] = []
    index = 0
    while index < len(argv):
        arg = argv[index]
        if arg.startswith(HEADERS_PREFIX) and len(arg) > len(HEADERS_PREFIX):
            name, separator, value = arg[len(HEADERS_PREFIX):].partition("=")
            if not separator:
                if index + 1 >= len(argv):
                    raise ValueError(f"{arg} expects a value")
                index += 1
                value = argv[index]
            headers[name.lower()] = value
        else:
            remaining.append(arg)
        index += 1
    return headers, remaining


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    try:
        dotted, remaining = split_header_options(argv)
    except ValueError as exc:
        parser.error(str(exc))
    args = parser.parse_args(remaining)
    args.custom_headers = {**dict(args.headers), **dotted}
    return args


def resolve_sitemap_url(target: str) -> Optional[str]:
    """Repair the target and point bare domains at /sitemap.xml"""
    url = try_valid_url(target)
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.path in ("", "/"):
        url = parsed._replace(path="/sitemap.xml").geturl()
    return url


def build_config(args: argparse.Namespace, sitemap_url: str) -> RunConfig:
    parsed = urlparse(sitemap_url)
    return RunConfig(
        domain=f"{parsed.scheme}://{parsed.netloc}",
        sitemap_url=sitemap_url,
        all=args.all,
        newer_than=args.range,
        delay=args.delay,
        images=args.img,
        css=args.css,
        js=args.js,
        webp=args.webp,
        avif=args.avif,
        brotli=args.brotli,
        gzip=args.gzip,
        deflate=args.deflate,
        purge=args.purge,
        purge_delay=args.purge_delay,
        purge_path=args.purge_path,
        purge_all_encodings=args.purge_all_encodings,
        custom_headers=args.custom_headers,
        cache_status_header=args.cache_status_header,
        ip=args.ip,
        cloudflare=CloudflareCredentials(
            email=args.cf_email,
            zone_id=args.cf_zone,
            api_key=args.cf_apikey,
        ),
    )


def precheck_sitemap(session: requests.Session, url: str) -> None:
    """Make sure the sitemap answers before parsing it"""
    response = session.get(url, timeout=SITEMAP_TIMEOUT)
    try:
        if not response.ok:
            raise requests.HTTPError(
                f"{response.status_code} {response.reason} for {url}", response=response
            )
    finally:
        response.close()


def configure_logging(quiet: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if quiet else logging.DEBUG,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    # urllib3 connection chatter drowns out the warm up log
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.quiet)

    sitemap_url = resolve_sitemap_url(args.sitemap)
    if not sitemap_url:
        logger.error("Please specify a valid URL! Your URL %s seems not correct.", args.sitemap)
        return 1

    config = build_config(args, sitemap_url)
    session = requests.Session()
    session.headers["user-agent"] = USER_AGENT

    try:
        precheck_sitemap(session, sitemap_url)
        logger.info("📬 Getting sitemap from %s", sitemap_url)
        entries = process_sitemap(session, sitemap_url, logger)

        sitemap = Sitemap(config)
        sitemap.add_entries(entries)

        warmer = Warmer(sitemap, config, logger=logger)
        warmer.warmup()
    except requests.RequestException as exc:
        logger.error("Network error: %s", exc)
        return 1
    except ET.ParseError as exc:
        logger.error("XML parsing error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
