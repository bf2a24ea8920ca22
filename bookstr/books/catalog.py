"""Book types: canonical book names, their abbreviations and known versions.

Each book type (bible, quran, catechism, ...) maps every full book name to the
abbreviations people write, and every version abbreviation to its full title.
Lookups are case-insensitive and tolerant of periods, spacing, and roman or
ordinal number prefixes ("I John", "First John", "1John").
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from bookstr.config import settings


@dataclass(slots=True)
class BookType:
    name: str
    display_name: str
    books: dict[str, list[str]]
    versions: dict[str, str] = field(default_factory=dict)
    chapter_separator: str = " "
    verse_separator: str = ":"

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> BookType:
        return cls(
            name=str(payload["name"]).lower(),
            display_name=str(payload.get("display_name") or payload.get("displayName") or payload["name"]),
            books={str(k): [str(a) for a in v] for k, v in (payload.get("books") or {}).items()},
            versions={str(k).upper(): str(v) for k, v in (payload.get("versions") or {}).items()},
            chapter_separator=str(payload.get("chapter_separator", " ")),
            verse_separator=str(payload.get("verse_separator", ":")),
        )


BIBLE = BookType(
    name="bible",
    display_name="Bible",
    books={
        # Old Testament
        "Genesis": ["Gen", "Ge", "Gn"],
        "Exodus": ["Exod", "Ex", "Exo"],
        "Leviticus": ["Lev", "Le", "Lv"],
        "Numbers": ["Num", "Nu", "Nm", "Nb"],
        "Deuteronomy": ["Deut", "De", "Dt"],
        "Joshua": ["Josh", "Jos", "Jsh"],
        "Judges": ["Judg", "Jg", "Jdgs"],
        "Ruth": ["Ru", "Rth"],
        "1 Samuel": ["1 Sam", "1 Sa", "1S"],
        "2 Samuel": ["2 Sam", "2 Sa", "2S"],
        "1 Kings": ["1 Kgs", "1 Ki", "1K"],
        "2 Kings": ["2 Kgs", "2 Ki", "2K"],
        "1 Chronicles": ["1 Chr", "1 Ch"],
        "2 Chronicles": ["2 Chr", "2 Ch"],
        "Ezra": ["Ezr", "Ez"],
        "Nehemiah": ["Neh", "Ne"],
        "Esther": ["Esth", "Es"],
        "Job": ["Jb"],
        "Psalms": ["Ps", "Psalm", "Psa", "Psm", "Pss", "Psal"],
        "Proverbs": ["Prov", "Pr", "Prv"],
        "Ecclesiastes": ["Eccl", "Ec", "Ecc", "Qoh"],
        "Song of Solomon": ["Song", "So", "SOS", "Song of Songs", "Canticles", "Cant"],
        "Isaiah": ["Isa", "Is"],
        "Jeremiah": ["Jer", "Je", "Jr"],
        "Lamentations": ["Lam", "La"],
        "Ezekiel": ["Ezek", "Eze", "Ezk"],
        "Daniel": ["Dan", "Da", "Dn"],
        "Hosea": ["Hos", "Ho"],
        "Joel": ["Jl"],
        "Amos": ["Am"],
        "Obadiah": ["Obad", "Ob"],
        "Jonah": ["Jnh"],
        "Micah": ["Mic", "Mc"],
        "Nahum": ["Nah", "Na"],
        "Habakkuk": ["Hab", "Hb"],
        "Zephaniah": ["Zeph", "Zep", "Zp"],
        "Haggai": ["Hag", "Hg"],
        "Zechariah": ["Zech", "Zec", "Zc"],
        "Malachi": ["Mal", "Ml"],
        # Deuterocanonical
        "Tobit": ["Tob", "Tb"],
        "Judith": ["Jdt", "Jth"],
        "Wisdom": ["Wis", "Ws"],
        "Sirach": ["Sir", "Ecclus", "Ecclesiasticus"],
        "Baruch": ["Bar", "Ba"],
        "1 Maccabees": ["1 Macc", "1 Mac", "1M"],
        "2 Maccabees": ["2 Macc", "2 Mac", "2M"],
        "3 Maccabees": ["3 Macc", "3 Mac", "3M"],
        "4 Maccabees": ["4 Macc", "4 Mac", "4M"],
        "1 Esdras": ["1 Esd", "1 Es"],
        "2 Esdras": ["2 Esd", "2 Es"],
        "Prayer of Manasseh": ["Pr Man", "Prayer of Man", "Man"],
        "Additions to Esther": ["Add Esth", "Add Est", "Esther Additions"],
        "Additions to Daniel": ["Add Dan", "Daniel Additions"],
        "Bel and the Dragon": ["Bel", "Bel and Dragon"],
        "Susanna": ["Sus"],
        "Prayer of Azariah": ["Pr Azar", "Prayer of Azar", "Azar"],
        "Song of the Three Young Men": ["Song Three", "Three Young Men", "Three Youths"],
        # New Testament
        "Matthew": ["Matt", "Mt"],
        "Mark": ["Mk", "Mrk"],
        "Luke": ["Lk", "Luk"],
        "John": ["Jn", "Joh"],
        "Acts": ["Ac"],
        "Romans": ["Rom", "Ro", "Rm"],
        "1 Corinthians": ["1 Cor", "1 Co"],
        "2 Corinthians": ["2 Cor", "2 Co"],
        "Galatians": ["Gal", "Ga"],
        "Ephesians": ["Eph", "Ephes"],
        "Philippians": ["Phil", "Php", "Pp"],
        "Colossians": ["Col"],
        "1 Thessalonians": ["1 Thess", "1 Th"],
        "2 Thessalonians": ["2 Thess", "2 Th"],
        "1 Timothy": ["1 Tim", "1 Ti"],
        "2 Timothy": ["2 Tim", "2 Ti"],
        "Titus": ["Tit"],
        "Philemon": ["Phlm", "Phm", "Philem"],
        "Hebrews": ["Heb"],
        "James": ["Jas", "Jm"],
        "1 Peter": ["1 Pet", "1 Pe", "1 Pt"],
        "2 Peter": ["2 Pet", "2 Pe", "2 Pt"],
        "1 John": ["1 Jn", "1 Jo"],
        "2 John": ["2 Jn", "2 Jo"],
        "3 John": ["3 Jn", "3 Jo"],
        "Jude": ["Jud"],
        "Revelation": ["Rev", "Re", "The Revelation", "Apocalypse"],
    },
    versions={
        "KJV": "King James Version",
        "NKJV": "New King James Version",
        "NIV": "New International Version",
        "ESV": "English Standard Version",
        "NASB": "New American Standard Bible",
        "NLT": "New Living Translation",
        "MSG": "The Message",
        "CEV": "Contemporary English Version",
        "NRSV": "New Revised Standard Version",
        "RSV": "Revised Standard Version",
        "ASV": "American Standard Version",
        "YLT": "Young's Literal Translation",
        "WEB": "World English Bible",
        "GNV": "1599 Geneva Bible",
        "DRB": "Douay-Rheims Bible",
    },
)

_SURAHS = [
    "Al-Fatiha:Fatiha,The Opening", "Al-Baqarah:Baqarah,The Cow", "Ali Imran:Imran,Family of Imran",
    "An-Nisa:Nisa,The Women", "Al-Maidah:Maidah,The Table Spread", "Al-Anam:Anam,The Cattle",
    "Al-Araf:Araf,The Heights", "Al-Anfal:Anfal,The Spoils of War", "At-Tawbah:Tawbah,The Repentance",
    "Yunus:", "Hud:", "Yusuf:Joseph", "Ar-Rad:Rad,The Thunder", "Ibrahim:Abraham",
    "Al-Hijr:Hijr,The Rocky Tract", "An-Nahl:Nahl,The Bee", "Al-Isra:Isra,The Night Journey",
    "Al-Kahf:Kahf,The Cave", "Maryam:Mary", "Taha:Ta-Ha", "Al-Anbiya:Anbiya,The Prophets",
    "Al-Hajj:Hajj,The Pilgrimage", "Al-Muminun:Muminun,The Believers", "An-Nur:Nur,The Light",
    "Al-Furqan:Furqan,The Criterion", "Ash-Shuara:Shuara,The Poets", "An-Naml:Naml,The Ant",
    "Al-Qasas:Qasas,The Stories", "Al-Ankabut:Ankabut,The Spider", "Ar-Rum:Rum,The Romans",
    "Luqman:", "As-Sajdah:Sajdah,The Prostration", "Al-Ahzab:Ahzab,The Clans", "Saba:Sheba",
    "Fatir:The Originator", "Ya-Sin:Yasin,Yaseen", "As-Saffat:Saffat,Those Ranged in Rows", "Sad:",
    "Az-Zumar:Zumar,The Groups", "Ghafir:The Forgiver", "Fussilat:Explained in Detail",
    "Ash-Shura:Shura,The Consultation", "Az-Zukhruf:Zukhruf,The Gold", "Ad-Dukhan:Dukhan,The Smoke",
    "Al-Jathiyah:Jathiyah,The Crouching", "Al-Ahqaf:Ahqaf,The Wind-Curved Sandhills", "Muhammad:",
    "Al-Fath:Fath,The Victory", "Al-Hujurat:Hujurat,The Rooms", "Qaf:",
    "Adh-Dhariyat:Dhariyat,The Winnowing Winds", "At-Tur:Tur,The Mount", "An-Najm:Najm,The Star",
    "Al-Qamar:Qamar,The Moon", "Ar-Rahman:Rahman,The Beneficent", "Al-Waqiah:Waqiah,The Event",
    "Al-Hadid:Hadid,The Iron", "Al-Mujadilah:Mujadilah,The Pleading Woman", "Al-Hashr:Hashr,The Gathering",
    "Al-Mumtahanah:Mumtahanah", "As-Saff:Saff,The Ranks", "Al-Jumuah:Jumuah,Friday",
    "Al-Munafiqun:Munafiqun,The Hypocrites", "At-Taghabun:Taghabun,The Mutual Disillusion",
    "At-Talaq:Talaq,The Divorce", "At-Tahrim:Tahrim,The Prohibition", "Al-Mulk:Mulk,The Sovereignty",
    "Al-Qalam:Qalam,The Pen", "Al-Haqqah:Haqqah,The Reality", "Al-Maarij:Maarij,The Ascending Stairways",
    "Nuh:Noah", "Al-Jinn:Jinn,The Jinn", "Al-Muzzammil:Muzzammil,The Enshrouded One",
    "Al-Muddaththir:Muddaththir,The Cloaked One", "Al-Qiyamah:Qiyamah,The Resurrection",
    "Al-Insan:Insan,The Human", "Al-Mursalat:Mursalat,The Emissaries", "An-Naba:Naba,The Tidings",
    "An-Naziat:Naziat", "Abasa:He Frowned", "At-Takwir:Takwir,The Overthrowing",
    "Al-Infitar:Infitar,The Cleaving", "Al-Mutaffifin:Mutaffifin", "Al-Inshiqaq:Inshiqaq,The Sundering",
    "Al-Buruj:Buruj,The Constellations", "At-Tariq:Tariq,The Night-Comer", "Al-Ala:Ala,The Most High",
    "Al-Ghashiyah:Ghashiyah,The Overwhelming", "Al-Fajr:Fajr,The Dawn", "Al-Balad:Balad,The City",
    "Ash-Shams:Shams,The Sun", "Al-Layl:Layl,The Night", "Ad-Duha:Duha,The Morning Hours",
    "Ash-Sharh:Sharh,The Relief", "At-Tin:Tin,The Fig", "Al-Alaq:Alaq,The Clot", "Al-Qadr:Qadr,The Power",
    "Al-Bayyinah:Bayyinah,The Evidence", "Az-Zalzalah:Zalzalah,The Earthquake",
    "Al-Adiyat:Adiyat,The Runners", "Al-Qariah:Qariah,The Calamity", "At-Takathur:Takathur",
    "Al-Asr:Asr,The Declining Day", "Al-Humazah:Humazah,The Traducer", "Al-Fil:Fil,The Elephant",
    "Quraysh:The Quraysh", "Al-Maun:Maun,The Small kindnesses", "Al-Kawthar:Kawthar,The Abundance",
    "Al-Kafirun:Kafirun,The Disbelievers", "An-Nasr:Nasr,The Divine Support",
    "Al-Masad:Masad,The Palm Fibre", "Al-Ikhlas:Ikhlas,The Sincerity", "Al-Falaq:Falaq,The Daybreak",
    "An-Nas:Nas,The Mankind",
]


def _surah_table() -> dict[str, list[str]]:
    books: dict[str, list[str]] = {}
    for entry in _SURAHS:
        name, _, aliases = entry.partition(":")
        books[name] = [a for a in aliases.split(",") if a]
    return books


QURAN = BookType(
    name="quran",
    display_name="Quran",
    books=_surah_table(),
    versions={
        "SAHIH": "Sahih International",
        "PICKTHALL": "Muhammad Marmaduke William Pickthall",
        "YUSUFALI": "Abdullah Yusuf Ali",
        "SHAKIR": "Muhammad Habib Shakir",
        "MUHD": "Dr. Ghali",
        "CLEARQURAN": "Dr. Mustafa Khattab, the Clear Quran",
        "SARWAR": "Muhammad Sarwar",
        "KHAN": "Taqi-ud-Din al-Hilali and Muhammad Muhsin Khan",
        "QARIBULLAH": "Qaribullah & Darwish",
        "ARABIC": "Arabic Text",
    },
)

CATECHISM = BookType(
    name="catechism",
    display_name="Catechism of the Catholic Church",
    books={
        "Article 1": ["Art 1"],
        "Article 2": ["Art 2"],
        "Article 3": ["Art 3"],
        "Part I": ["Part 1"],
        "Part II": ["Part 2"],
        "Part III": ["Part 3"],
        "Part IV": ["Part 4"],
    },
    versions={
        "CCC": "Catechism of the Catholic Church",
        "YOUCAT": "Youth Catechism",
        "COMPENDIUM": "Compendium of the Catechism",
    },
    chapter_separator=":",
    verse_separator=".",
)

_BOOK_TYPES: dict[str, BookType] = {bt.name: bt for bt in (BIBLE, QURAN, CATECHISM)}
_ALIAS_INDEX: dict[str, dict[str, str]] = {}
_configured_loaded = False

_NUMBER_PREFIXES = {
    "iv": "4", "iii": "3", "ii": "2", "i": "1",
    "fourth": "4", "third": "3", "second": "2", "first": "1",
    "4th": "4", "3rd": "3", "2nd": "2", "1st": "1",
}


def _alias_key(name: str) -> str:
    key = name.lower().replace(".", " ")
    return re.sub(r"\s+", " ", key).strip()


def _numeric_prefix(key: str) -> str:
    head, sep, rest = key.partition(" ")
    if sep and rest and head in _NUMBER_PREFIXES:
        return f"{_NUMBER_PREFIXES[head]} {rest}"
    return key


def _build_alias_index(book_type: BookType) -> dict[str, str]:
    index: dict[str, str] = {}
    for full_name, abbreviations in book_type.books.items():
        for alias in [full_name, *abbreviations]:
            key = _alias_key(alias)
            index.setdefault(key, full_name)
            index.setdefault(key.replace(" ", ""), full_name)
    return index


def register_book_type(book_type: BookType) -> None:
    """Add or replace a book type at runtime."""
    _BOOK_TYPES[book_type.name] = book_type
    _ALIAS_INDEX.pop(book_type.name, None)
    logger.debug(f"Registered book type {book_type.name} ({len(book_type.books)} books)")


def load_book_types_file(path: str | Path) -> list[str]:
    """Register book types from a JSON file (a list of objects, or one object).

    Returns the names registered. A broken file is logged and skipped.
    """
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load book types from {path}: {e}")
        return []

    entries = payload if isinstance(payload, list) else [payload]
    names: list[str] = []
    for entry in entries:
        try:
            book_type = BookType.from_dict(entry)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping malformed book type entry in {path}: {e}")
            continue
        register_book_type(book_type)
        names.append(book_type.name)
    return names


def _ensure_configured_types() -> None:
    global _configured_loaded
    if _configured_loaded:
        return
    _configured_loaded = True
    if settings.book_types_file:
        loaded = load_book_types_file(settings.book_types_file)
        if loaded:
            logger.info(f"Added {len(loaded)} custom book types: {', '.join(loaded)}")


def get_book_type(name: str) -> BookType | None:
    _ensure_configured_types()
    return _BOOK_TYPES.get((name or "").strip().lower())


def book_type_names() -> list[str]:
    _ensure_configured_types()
    return list(_BOOK_TYPES)


def alias_index(book_type: str) -> dict[str, str]:
    config = get_book_type(book_type)
    if config is None:
        return {}
    if config.name not in _ALIAS_INDEX:
        _ALIAS_INDEX[config.name] = _build_alias_index(config)
    return _ALIAS_INDEX[config.name]


def canonical_book(name: str, book_type: str) -> str | None:
    """Map a written book name or abbreviation to its canonical full name."""
    index = alias_index(book_type)
    if not index or not name:
        return None
    key = _alias_key(name)
    unslugged = _alias_key(key.replace("-", " "))
    for candidate in (key, _numeric_prefix(key), unslugged, _numeric_prefix(unslugged)):
        if candidate in index:
            return index[candidate]
        if candidate.replace(" ", "") in index:
            return index[candidate.replace(" ", "")]
    return None


def canonical_version(token: str, book_type: str) -> str | None:
    """Return the upper-case version abbreviation if the token is a known version."""
    config = get_book_type(book_type)
    if config is None or not token:
        return None
    wanted = token.strip().upper()
    if wanted in config.versions:
        return wanted
    for abbrev, full_name in config.versions.items():
        if full_name.upper() == wanted:
            return abbrev
    return None


def version_name(version: str, book_type: str) -> str:
    config = get_book_type(book_type)
    if config is None:
        return version
    return config.versions.get(version.upper(), version)
