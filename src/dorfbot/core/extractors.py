"""HTML data extraction from game pages.

All read-only page inspection parses the rendered HTML with selectolax;
page mutations live in the screen classes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from selectolax.parser import HTMLParser, Node

from dorfbot.core.logging import get_logger
from dorfbot.core.normalizer import (
    looks_like_empty_plot,
    matches_troop,
    normalize_text,
    troop_tokens,
    token_match,
)
from dorfbot.models.farm_target import TileInfo
from dorfbot.models.village import BuildingInfo, Resources, Village

log = get_logger("extractor")

# Bidi marks and the unicode minus used around map coordinates
_COORD_NOISE = re.compile("[\u200e\u200f\u202a-\u202e\u2066-\u2069]")
COORD_PAIR_RE = re.compile(r"\(\s*(-?\d+)\s*\|\s*(-?\d+)\s*\)")
BARE_PAIR_RE = re.compile(r"(?:^|\s)(-?\d+)\s*\|\s*(-?\d+)(?:\s|$)")
SLOT_ID_RE = re.compile(r"[?&]id=(\d+)")
NEWDID_RE = re.compile(r"[?&]newdid=(\d+)")
TRAIN_INPUT_RE = re.compile(r"^t(\d+)$")
EXISTING_RE = re.compile(r"(?:existente|existentes|existing|vorhanden)\s*:\s*(\d{1,9})")
LEADING_COUNT_RE = re.compile(r"^\s*(\d{1,6})\s*(?:x\b|\s+)")
TIMES_COUNT_RE = re.compile(r"\b(\d{1,6})\s*x\b")
TIMER_RE = re.compile(r"\d{1,2}:\d{2}")
POPULATION_RE = re.compile(r"(?:habitantes|population|inhabitants|einwohner)\s*[:\-]?\s*(\d{1,6})")
TILE_LABEL_RE = re.compile(r"^\s*(?:vesnice|aldea|village|dorf)\s*:\s*(.+)$", re.IGNORECASE)

QUEUE_SELECTORS = (
    ".under_progress, .under-progress, .trainingQueue, .productionQueue, .queue, "
    ".underConstruction, .build_queue, .buildingList, .buildDetails, .queueWrapper, "
    "#trainQueue, .trainingList, .unitQueue"
)
ERROR_SELECTORS = ".error, .alert, .warning, .messageError"
RESOURCE_LABELS = {
    "wood": ("madera", "wood", "holz"),
    "clay": ("barro", "clay", "lehm", "arcilla"),
    "iron": ("hierro", "iron", "eisen", "mineral"),
    "crop": ("cereal", "crop", "trigo", "getreide"),
}


def _text(node: Node | None, separator: str = " ") -> str:
    if node is None:
        return ""
    return node.text(separator=separator) or ""


def _attr(node: Node | None, name: str) -> str:
    if node is None:
        return ""
    return node.attributes.get(name) or ""


def _classes(node: Node) -> list[str]:
    return _attr(node, "class").split()


def clean_coords_text(text: str) -> str:
    return _COORD_NOISE.sub("", text or "").replace("\u2212", "-")


def parse_amount(raw: str | None) -> int | None:
    """Parse a displayed amount such as '1.234' or '12 500'."""
    digits = re.sub(r"\D", "", clean_coords_text(raw or ""))
    return int(digits) if digits else None


# ----------------------------------------------------------------------
# Building slot view
# ----------------------------------------------------------------------


def parse_building_info(html: str) -> BuildingInfo:
    """Read the building name and level from a build.php slot page."""
    parser = HTMLParser(html)
    body_classes = _classes(parser.body) if parser.body is not None else []
    empty = "gid0" in body_classes or "aid0" in body_classes

    title = parser.css_first(".titleInHeader") or parser.css_first("h1")
    if title is None:
        return BuildingInfo(name=None, level=0, empty=empty)

    text = _text(title).strip()
    level_match = re.search(r"\d+", text)
    name = re.sub(r"\s+", " ", re.sub(r"\d+", "", text, count=1)).strip()
    # Level captions ("Nivel", "Level", "Stufe") are not part of the name
    name = re.sub(r"\s*(nivel|level|stufe)\s*$", "", name, flags=re.IGNORECASE).strip()
    return BuildingInfo(
        name=name or None,
        level=int(level_match.group(0)) if level_match else 0,
        empty=empty or looks_like_empty_plot(text),
    )


def is_slot_queued(html: str, slot: int) -> bool:
    """Whether the construction queue box links to the given slot."""
    parser = HTMLParser(html)
    box = parser.css_first(".buildingList") or parser.css_first(".boxes-contents")
    if box is None:
        return False
    for link in box.css("a"):
        match = SLOT_ID_RE.search(_attr(link, "href"))
        if match and int(match.group(1)) == slot:
            return True
    return False


def detect_page_error(html: str) -> str | None:
    node = HTMLParser(html).css_first(ERROR_SELECTORS)
    if node is None:
        return None
    text = normalize_text(_text(node))
    return text or None


def verify_building_queued(html: str, slot: int | None, building_name: str | None) -> tuple[bool, str]:
    """Check the page after an upgrade click for a matching queue entry.

    Returns (ok, reason); reason is one of queue_full, not_enough_resources,
    building_not_queued when ok is False.
    """
    error = detect_page_error(html)
    if error:
        if "cola" in error and "llena" in error:
            return False, "queue_full"
        if any(k in error for k in ("recurs", "resource", "madera", "barro", "arcilla")):
            return False, "not_enough_resources"

    parser = HTMLParser(html)
    if parser.css_first(".queueFull, .buildingQueueFull") is not None:
        return False, "queue_full"

    target = normalize_text(building_name)
    tokens = troop_tokens(target)
    for entry in parser.css(QUEUE_SELECTORS):
        text = normalize_text(_text(entry))
        if not text:
            continue
        if slot is not None:
            for link in entry.css('a[href*="build.php"]'):
                match = SLOT_ID_RE.search(_attr(link, "href"))
                if match and int(match.group(1)) == slot:
                    return True, "success"
        if not target:
            continue
        if target in text:
            return True, "success"
        if tokens:
            matched = sum(1 for t in tokens if t in text)
            if matched == len(tokens) or (matched >= 1 and TIMER_RE.search(text)):
                return True, "success"
        for img in entry.css("img"):
            alt = normalize_text(_attr(img, "alt"))
            title = normalize_text(_attr(img, "title"))
            if target in alt or target in title:
                return True, "success"
    return False, "building_not_queued"


# ----------------------------------------------------------------------
# Village overview / building view
# ----------------------------------------------------------------------


def parse_resource_amounts(html: str) -> Resources:
    """Read the stock bar, by element ids first and label text second."""
    parser = HTMLParser(html)
    amounts: dict[str, int] = {}
    for index, name in enumerate(("wood", "clay", "iron", "crop"), start=1):
        value = parse_amount(_text(parser.css_first(f"#stockBar #l{index}")))
        if value is not None:
            amounts[name] = value

    if len(amounts) < 4:
        stock = parser.css_first("#stockBar") or parser.body
        text = normalize_text(clean_coords_text(_text(stock)))
        for name, labels in RESOURCE_LABELS.items():
            if name in amounts:
                continue
            for label in labels:
                match = re.search(rf"{label}[^\d]*(\d[\d.,]*)", text)
                if match:
                    value = parse_amount(match.group(1))
                    if value is not None:
                        amounts[name] = value
                        break
    if len(amounts) < 4:
        log.debug("stock_bar_incomplete", found=sorted(amounts))
    return Resources(**amounts)


def parse_village_list(html: str) -> list[Village]:
    """Villages from the sidebar list (newdid links and data-did items)."""
    parser = HTMLParser(html)
    seen: set[str] = set()
    villages: list[Village] = []
    for link in parser.css('#sidebarBoxVillagelist a, .villageList a, a[href*="newdid="]'):
        match = NEWDID_RE.search(_attr(link, "href"))
        if not match or match.group(1) in seen:
            continue
        vid = match.group(1)
        seen.add(vid)
        villages.append(Village(id=vid, name=normalize_text(_text(link)) or vid))
    for item in parser.css("#sidebarBoxVillagelist li, .villageList li"):
        did = _attr(item, "data-did")
        if not did or did in seen:
            continue
        seen.add(did)
        villages.append(Village(id=did, name=normalize_text(_text(item)) or did))
    return villages


def parse_active_village(html: str) -> str | None:
    """Id of the highlighted village in the sidebar list."""
    parser = HTMLParser(html)
    for node in parser.css("#sidebarBoxVillagelist .active, .villageList .active"):
        did = _attr(node, "data-did")
        if did:
            return did
        link = node if node.tag == "a" else node.css_first('a[href*="newdid="]')
        if link is not None:
            match = NEWDID_RE.search(_attr(link, "href"))
            if match:
                return match.group(1)
    return None


def _slot_of(node: Node | None) -> int | None:
    if node is None:
        return None
    href = _attr(node, "href") or _attr(node, "data-href")
    match = SLOT_ID_RE.search(href)
    if match:
        return int(match.group(1))
    for attr in ("data-id", "data-slotid", "data-aid"):
        value = _attr(node, attr)
        if value.isdigit():
            return int(value)
    return None


def find_building_slot(html: str, keywords: tuple[str, ...] | list[str], gids: tuple[int, ...] | list[int]) -> int | None:
    """Locate an existing building's slot on the building view (dorf2)."""
    parser = HTMLParser(html)
    targets = [normalize_text(k) for k in keywords if k]
    gid_classes = {f"g{g}" for g in gids}

    for el in parser.css('area[href*="build.php"], a[href*="build.php"], [data-slotid], [data-id]'):
        slot = _slot_of(el)
        if not slot:
            continue
        # Links carrying gid= offer a new building, not the existing one
        if "gid=" in _attr(el, "href"):
            continue
        label = normalize_text(_attr(el, "title") or _attr(el, "alt") or _text(el))
        if any(t and t in label for t in targets) or gid_classes & set(_classes(el)):
            return slot

    for gid in gids:
        for el in parser.css(f".g{gid}"):
            slot = _slot_of(el) or _slot_of(el.css_first('a[href*="build.php"]'))
            if slot:
                return slot

    for el in parser.css(".buildingSlot, .label"):
        link = el.css_first('a[href*="build.php"]')
        slot = _slot_of(link)
        if not slot:
            continue
        label = normalize_text(_text(el) or _attr(link, "title"))
        if any(t and t in label for t in targets):
            return slot
    return None


def title_matches(html: str, keywords: tuple[str, ...] | list[str]) -> bool:
    parser = HTMLParser(html)
    title = normalize_text(_text(parser.css_first(".titleInHeader") or parser.css_first("h1")))
    return bool(title) and any(normalize_text(k) in title for k in keywords if k)


# ----------------------------------------------------------------------
# Troop training
# ----------------------------------------------------------------------


@dataclass
class TroopRow:
    """One unit row of a training form."""

    index: int | None
    name: str | None
    text: str
    max_quantity: int
    existing: int | None


def _row_of(node: Node) -> Node:
    current = node.parent
    while current is not None and current.tag not in ("html", "body", "form"):
        if current.tag == "tr":
            return current
        if {"unit", "trainUnits", "textList", "unitWrapper", "action", "innerTroopWrapper"} & set(_classes(current)):
            return current
        current = current.parent
    return node.parent or node


def _training_inputs(root: Node | HTMLParser) -> list[tuple[Node, int | None]]:
    found: list[tuple[Node, int | None]] = []
    for node in root.css("input"):
        match = TRAIN_INPUT_RE.match(_attr(node, "name"))
        unit = _attr(node, "data-unitid") or _attr(node, "data-unit")
        if match:
            found.append((node, int(match.group(1))))
        elif unit:
            found.append((node, int(unit) if unit.isdigit() else None))
    return found


def _max_quantity(row: Node, field: Node, row_text: str) -> int:
    max_attr = _attr(field, "max")
    if max_attr.strip().isdigit():
        return int(max_attr.strip())
    max_node = row.css_first(".max, a.max")
    match = re.search(r"\d+", _text(max_node)) if max_node is not None else None
    if match:
        return int(match.group(0))
    slash = re.search(r"/\s*(\d{1,6})", row_text)
    if slash:
        return int(slash.group(1))
    value_node = row.css_first(".value, .maxValue")
    match = re.search(r"\d+", _text(value_node)) if value_node is not None else None
    if match:
        return int(match.group(0))
    return 0


def parse_troop_rows(html: str) -> list[TroopRow]:
    parser = HTMLParser(html)
    rows: list[TroopRow] = []
    seen: set[int] = set()
    for field, index in _training_inputs(parser):
        row = _row_of(field)
        row_id = row.mem_id
        if row_id in seen:
            continue
        seen.add(row_id)
        text = normalize_text(clean_coords_text(_text(row)))
        img = row.css_first("img")
        name = _attr(img, "alt") or _attr(img, "title") or _text(row.css_first(".tit a, .unitName, .name"))
        existing = EXISTING_RE.search(text)
        rows.append(TroopRow(
            index=index,
            name=normalize_text(name) or None,
            text=f"{text} {normalize_text(name)}".strip(),
            max_quantity=_max_quantity(row, field, text),
            existing=int(existing.group(1)) if existing else None,
        ))
    return rows


def find_troop_row(rows: list[TroopRow], identifier: str | int) -> TroopRow | None:
    """Locate a unit row by numeric index or fuzzy troop name."""
    if isinstance(identifier, int) or str(identifier).strip().isdigit():
        wanted = int(identifier)
        return next((r for r in rows if r.index == wanted), None)
    target = normalize_text(str(identifier))
    for row in rows:
        if target and target in row.text:
            return row
    return next((r for r in rows if matches_troop(r.text, target)), None)


def _queue_entries(parser: HTMLParser) -> list[Node]:
    """Queue containers, outermost only, excluding the training form itself."""
    containers = [
        n for n in parser.css(QUEUE_SELECTORS)
        if not _training_inputs(n) and n.css_first('input[type="number"]') is None
    ]
    ids = {n.mem_id for n in containers}
    outer: list[Node] = []
    for node in containers:
        parent = node.parent
        nested = False
        while parent is not None:
            if parent.mem_id in ids:
                nested = True
                break
            parent = parent.parent
        if not nested:
            outer.append(node)
    return outer


def _entry_lines(container: Node) -> list[str]:
    rows = container.css("tr, li, .details, .entry")
    if rows:
        lines = []
        for row in rows:
            alts = " ".join(_attr(img, "alt") for img in row.css("img"))
            lines.append(normalize_text(f"{_text(row)} {alts}"))
        return [line for line in lines if line]
    return [normalize_text(line) for line in _text(container, "\n").splitlines() if line.strip()]


def _line_count(line: str) -> int | None:
    match = LEADING_COUNT_RE.match(line) or TIMES_COUNT_RE.search(line)
    return int(match.group(1)) if match else None


def read_queued_troop_count(html: str, troop_name: str | None) -> int | None:
    """Sum of queued units for a troop; None when a match had no readable count."""
    if not troop_name:
        return None
    parser = HTMLParser(html)
    total = 0
    saw_match = False
    saw_uncounted = False
    for container in _queue_entries(parser):
        for line in _entry_lines(container):
            if not matches_troop(line, troop_name):
                continue
            saw_match = True
            count = _line_count(line)
            if count is None:
                saw_uncounted = True
            else:
                total += count
    if saw_match and total == 0 and saw_uncounted:
        return None
    return total


def read_existing_troop_count(html: str, identifier: str | int) -> int | None:
    row = find_troop_row(parse_troop_rows(html), identifier)
    return row.existing if row else None


def training_queue_has_entry(html: str, troop_name: str | None) -> bool:
    """Structural check: a queue entry or timer block mentions the troop."""
    parser = HTMLParser(html)
    target = normalize_text(troop_name)
    for container in _queue_entries(parser):
        text = normalize_text(_text(container))
        alts = [normalize_text(_attr(img, "alt") or _attr(img, "title")) for img in container.css("img")]
        has_timer = bool(TIMER_RE.search(text)) or any(
            k in text for k in ("curso", "cola", "queue", "termina", "listo", "duracion", "unidad")
        )
        if target:
            if target in text or any(target in a for a in alts if a):
                return True
            tokens = troop_tokens(target)
            matched = sum(1 for t in tokens if token_match(text, t))
            if tokens and (matched == len(tokens) or (matched >= 1 and has_timer)):
                return True
        elif has_timer and TIMES_COUNT_RE.search(text):
            return True
    for timer in parser.css(".timer, .dur, .countdown"):
        block = timer.parent
        text = normalize_text(_text(block))
        if target and target in text:
            return True
        if not target and TIMES_COUNT_RE.search(text):
            return True
    return False


# ----------------------------------------------------------------------
# Map and farm lists
# ----------------------------------------------------------------------


def parse_coord_pair(text: str | None) -> tuple[int, int] | None:
    cleaned = clean_coords_text(text or "")
    match = COORD_PAIR_RE.search(cleaned) or BARE_PAIR_RE.search(cleaned)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def parse_map_center(html: str) -> tuple[int, int] | None:
    """Own village coordinates from the map view inputs or header text."""
    parser = HTMLParser(html)
    x_input = parser.css_first('#xCoord, input[name="xCoord"], input[name="x"], input[name="xcoord"]')
    y_input = parser.css_first('#yCoord, input[name="yCoord"], input[name="y"], input[name="ycoord"]')
    if x_input is not None and y_input is not None:
        try:
            return int(_attr(x_input, "value")), int(_attr(y_input, "value"))
        except ValueError:
            pass
    header = parser.css_first("#map") or parser.css_first("#content")
    return parse_coord_pair(_text(header)) or parse_coord_pair(_text(parser.body))


def parse_map_tile(html: str) -> TileInfo | None:
    """Village details of a map tile; None for oases, empty land or unknown population."""
    parser = HTMLParser(html)
    details = None
    for selector in ("#tileDetails", "#mapDetails", ".tileDetails", ".mapDetails", "#content"):
        details = parser.css_first(selector)
        if details is not None:
            break
    text = normalize_text(_text(details or parser.body))
    if "oasis" in text:
        return None
    if not any(k in text for k in ("aldea", "village", "pueblo", "habitantes", "population", "inhabitants", "einwohner")):
        return None
    match = POPULATION_RE.search(text)
    if not match:
        return None

    title = parser.css_first("#tileDetails h1, #tileDetails .title, #mapDetails h1, h1, .titleInHeader")
    name = clean_coords_text(_text(title)).strip()
    label = TILE_LABEL_RE.match(name)
    if label:
        name = label.group(1)
    name = re.sub(r"\(\s*-?\d+\s*\|\s*-?\d+\s*\)\s*$", "", name).strip()
    name = re.sub(r"\([^)]*\)\s*$", "", name).strip()
    return TileInfo(population=int(match.group(1)), name=name or None)


def _pair_from_node(node: Node) -> tuple[int, int] | None:
    for el in [node, node.css_first("[data-x][data-y], [data-coord], [data-coords], [data-coordinates]")]:
        if el is None:
            continue
        dx, dy = _attr(el, "data-x"), _attr(el, "data-y")
        if dx and dy:
            try:
                return int(dx), int(dy)
            except ValueError:
                pass
        coord = _attr(el, "data-coord") or _attr(el, "data-coords") or _attr(el, "data-coordinates")
        pair = parse_coord_pair(coord)
        if pair:
            return pair

    x_val = y_val = None
    for field in node.css("input"):
        name = (_attr(field, "name") or _attr(field, "id")).lower()
        value = _attr(field, "value")
        if not value:
            continue
        if x_val is None and (name == "x" or "xcoord" in name):
            x_val = value
        elif y_val is None and (name == "y" or "ycoord" in name):
            y_val = value
    if x_val is not None and y_val is not None:
        try:
            return int(x_val), int(y_val)
        except ValueError:
            pass

    for link in node.css("a[href]"):
        href = _attr(link, "href")
        x_match = re.search(r"[?&]x=(-?\d+)", href)
        y_match = re.search(r"[?&]y=(-?\d+)", href)
        if x_match and y_match:
            return int(x_match.group(1)), int(y_match.group(1))
    return parse_coord_pair(_text(node))


def parse_farm_list_targets(html: str) -> list[tuple[int, int]]:
    """Coordinates of every target row currently rendered in a farm list."""
    parser = HTMLParser(html)
    seen: set[tuple[int, int]] = set()
    targets: list[tuple[int, int]] = []
    for row in parser.css("tr, .raidListEntry, .farmListEntry, .slotRow, .listEntry, .listRow"):
        pair = _pair_from_node(row)
        if pair is None or pair in seen:
            continue
        seen.add(pair)
        targets.append(pair)
    return targets


FARM_LIST_NAME_EXCLUDE = (
    "lista de vacas", "farm list", "raid list", "crear", "nueva lista", "new list",
    "create list", "comenzar", "start all", "todas las",
)


def parse_farm_list_names(html: str) -> list[str]:
    """Normalized names of the farm lists shown on the rally point tab."""
    parser = HTMLParser(html)
    village_names = {
        normalize_text(_text(n))
        for n in parser.css("#sidebarBoxVillagelist .name, .villageList .name, .villageName")
    }
    seen: set[str] = set()
    names: list[str] = []
    nodes = parser.css(
        ".raidListTitle, .listTitleText, .listTitle .name, .farmListName, "
        ".raidList .name, .listEntry .name, select[name*=\"list\"] option"
    )
    for node in nodes:
        text = normalize_text(_text(node))
        if not text or len(text) > 50 or text in seen or text in village_names:
            continue
        if any(e in text for e in FARM_LIST_NAME_EXCLUDE):
            continue
        seen.add(text)
        names.append(text)
    return names


def parse_inactive_feed_coords(html: str) -> list[tuple[int, int]]:
    """Coordinate pairs from an inactive-search results page."""
    coords: list[tuple[int, int]] = []
    for node in HTMLParser(html or "").css("small.text-muted"):
        pair = parse_coord_pair(_text(node, separator=""))
        if pair is not None:
            coords.append(pair)
    return coords
