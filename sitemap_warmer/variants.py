"""Accept-Encoding and image Accept variants requested per resource."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from .config import RunConfig

ACCEPT_DEFAULT = "image/apng,image/svg+xml,image/*,*/*;q=0.8"
ACCEPT_WEBP = f"image/webp,{ACCEPT_DEFAULT}"
ACCEPT_AVIF = f"image/avif,image/webp,{ACCEPT_DEFAULT}"

ENCODING_BROTLI = "gzip, deflate, br"
ENCODING_GZIP = "gzip, deflate"
ENCODING_DEFLATE = "deflate"

CANONICAL_PREFERENCE = ("deflate", "gzip", "br")


@dataclass(frozen=True)
class VariantSet:
    encodings: Dict[str, str]
    accepts: Dict[str, str]

    @property
    def canonical_encoding(self) -> str:
        """Encoding key whose response is parsed for assets, least compressed first."""
        for key in CANONICAL_PREFERENCE:
            if key in self.encodings:
                return key
        return next(iter(self.encodings))


def build_encoding_variants(brotli: bool, gzip: bool, deflate: bool) -> Dict[str, str]:
    encodings: Dict[str, str] = {}
    if brotli:
        encodings["br"] = ENCODING_BROTLI
    if gzip:
        encodings["gzip"] = ENCODING_GZIP
    if deflate or not encodings:
        encodings["deflate"] = ENCODING_DEFLATE
    return encodings


def build_accept_variants(avif: bool, webp: bool) -> Dict[str, str]:
    accepts = {"default": ACCEPT_DEFAULT}
    if avif:
        accepts["avif"] = ACCEPT_AVIF
    if webp:
        accepts["webp"] = ACCEPT_WEBP
    return accepts


def build_variants(config: RunConfig) -> VariantSet:
    return VariantSet(
        encodings=build_encoding_variants(config.brotli, config.gzip, config.deflate),
        accepts=build_accept_variants(config.avif, config.webp),
    )
