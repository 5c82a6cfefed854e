import re


def clean_md(text: str) -> str:
    """
    Strip markdown artifacts users paste into titles and steps.
    Removes:
    - Bold markers (**, __)
    - Leading headers (#, ##)
    - Leading bullets (-, *, •)
    """
    if not text:
        return ""

    text = re.sub(r"(\*\*|__)(.*?)\1", r"\2", text)
    text = re.sub(r"^\s*#+\s+", "", text)
    text = re.sub(r"^\s*[-*•]\s+", "", text)

    return text.strip()


def clean_step_text(text: str) -> str:
    # Step numbers live in their own column; drop "Step 3:" / "3." prefixes.
    text = clean_md(text)
    return re.sub(r"^(?:step\s*)?\d+\s*[:.)]\s+", "", text, flags=re.IGNORECASE).strip()


def normalize_tags(tags: list[str] | None) -> list[str]:
    """Trim, drop empties and de-duplicate (case-insensitive, first spelling wins)."""
    seen = set()
    out = []
    for tag in tags or []:
        tag = re.sub(r"\s+", " ", tag or "").strip()
        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        out.append(tag[:80])
    return out
