import re
import unicodedata


def sanitize_filename(filename: str) -> str:
    """
    Makes a filename safe to use as the last segment of a Supabase Storage key.
    - Strips accents (NFD decomposition, combining marks dropped).
    - Replaces anything outside [A-Za-z0-9._-] with a dash.
    - Collapses repeated dashes and trims leading/trailing dashes.
    - Drops any directory component the client may have sent.
    """
    if not filename:
        return "unnamed_file"

    # Browsers on Windows may still send "C:\\fakepath\\scan.png"
    filename = re.split(r"[\\/]", filename)[-1]

    filename = "".join(
        c for c in unicodedata.normalize("NFD", filename)
        if unicodedata.category(c) != "Mn"
    )

    filename = re.sub(r"[^a-zA-Z0-9._\-]", "-", filename)
    filename = re.sub(r"-+", "-", filename)
    filename = filename.strip("-")

    if filename in {".", ".."}:
        return "unnamed_file"
    return filename or "unnamed_file"
