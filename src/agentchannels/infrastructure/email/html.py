from __future__ import annotations
from bs4 import BeautifulSoup

_DROP_TAGS = ("script", "style", "head", "img")

def html_to_plain_text(html: str | None) -> str:
    """Readable text from an HTML mail body; link targets are dropped."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_DROP_TAGS):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    text = soup.get_text(separator="\n")
    lines = [line.strip() for line in text.splitlines()]
    # collapse runs of blank lines left behind by block elements
    out: list[str] = []
    for line in lines:
        if not line and out and not out[-1]:
            continue
        out.append(line)
    return "\n".join(out).strip()
