"""
String normalization helpers for comparing artist and tag names.
"""
import unicodedata

# Typography variants folded to ASCII before building artist keys
_TYPOGRAPHY_TRANSLATION = {
    ord("‘"): "'",
    ord("’"): "'",
    ord("‚"): "'",
    ord("′"): "'",
    ord("“"): '"',
    ord("”"): '"',
    ord("„"): '"',
    ord("‐"): "-",
    ord("‑"): "-",
    ord("‒"): "-",
    ord("–"): "-",
    ord("—"): "-",
    ord("−"): "-",
}


def normalize_text(text: str) -> str:
    """
    NFC-normalize, casefold and strip a string.

    Used for tag names and any other case-insensitive comparison where
    punctuation is significant.
    """
    if text is None:
        return ""
    return unicodedata.normalize('NFC', str(text)).casefold().strip()


def normalize_artist_key(name: str) -> str:
    """
    Normalize an artist name to a stable comparison key.

    Steps:
    - Fold typography variants (curly quotes, dashes)
    - Unicode NFKD and drop combining marks
    - Casefold
    - Replace punctuation with spaces and collapse whitespace

    Punctuation-only names ("!!!") keep their punctuation so they do not all
    collapse to the same empty key.
    """
    if not name:
        return ""

    text = str(name).strip().translate(_TYPOGRAPHY_TRANSLATION)
    if not text:
        return ""

    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.casefold()

    normalized = " ".join(
        "".join(" " if unicodedata.category(ch).startswith("P") else ch for ch in text).split()
    )
    return normalized or " ".join(text.split())


def artist_key(artist: str) -> str:
    """Grouping key for per-artist quotas and artist counts."""
    return normalize_artist_key(artist) or (artist or '').casefold()
