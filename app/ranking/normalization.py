"""
文本规范化与转写

- normalize_text: 小写、去变音符、压缩空白
- transliterate: 俄语关键词 → 乌兹别克语，西里尔字母 → 拉丁字母
- normalize_tag / extract_query_tags: 标签形态（a-z0-9 与 '-'）
"""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_COMBINING_RE = re.compile(r"[\u0300-\u036f]")
_CYRILLIC_RE = re.compile(r"[А-Яа-яЁёҒғҚқҢңӨөҲҳЎў]")
_QUERY_TAG_SPLIT_RE = re.compile(r"[\s,;|]+")
_TAG_INVALID_RE = re.compile(r"[^a-z0-9-]")
_TAG_DASHES_RE = re.compile(r"-+")

TAG_SEPARATOR = "-"

CYRILLIC_TO_LATIN: dict[str, str] = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "yo",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "x", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "shch", "ъ": "",
    "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
    # 乌兹别克语特有字母
    "ғ": "g'", "қ": "q", "ң": "ng", "ө": "o'", "ҳ": "h", "ў": "o'",
}

RUSSIAN_TO_UZBEK_KEYWORDS: dict[str, str] = {
    # 房产
    "недвижимость": "kuchmas mulk",
    "квартира": "kvartira",
    "дом": "uy",
    # 交通
    "автомобиль": "avtomobil",
    "грузовик": "kamaz",
    "велосипед": "velosiped",
    "мотоцикл": "mototsikl",
    "машина": "mashina",
    "авто": "mashina",
    # 电子
    "смартфон": "smartfon",
    "компьютер": "kompyuter",
    "ноутбук": "noutbuk",
    "планшет": "planshet",
    "телевизор": "televizor",
    "телефон": "telefon",
    # 家具
    "мебель": "mebel",
    "кровать": "karavot",
    "диван": "divan",
    "стол": "stol",
    "стул": "stul",
    # 服装
    "одежда": "kiyim",
    "обувь": "poyabzal",
    "рубашка": "ko'ylak",
    "брюки": "shim",
}


def normalize_text(text: str) -> str:
    """小写 + 去变音符 + 压缩空白。"""
    if not text:
        return ""
    lowered = text.lower().strip()
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = _COMBINING_RE.sub("", decomposed)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def has_searchable_content(text: str) -> bool:
    """只有标点/空白的查询视为空查询。"""
    return any(ch.isalnum() for ch in normalize_text(text))


def is_cyrillic(text: str) -> bool:
    return bool(_CYRILLIC_RE.search(text or ""))


def convert_russian_keywords(text: str) -> str:
    result = (text or "").lower()
    for russian, uzbek in RUSSIAN_TO_UZBEK_KEYWORDS.items():
        if russian in result:
            result = result.replace(russian, uzbek)
    return result


def transliterate_cyrillic(text: str) -> str:
    return "".join(CYRILLIC_TO_LATIN.get(ch, ch) for ch in text)


def transliterate(text: str) -> str:
    if not text:
        return ""
    converted = convert_russian_keywords(text)
    if is_cyrillic(converted):
        converted = transliterate_cyrillic(converted)
    return normalize_text(converted)


def normalize_tag(tag: str) -> str:
    if not tag:
        return ""
    value = _WHITESPACE_RE.sub(TAG_SEPARATOR, tag.lower().strip())
    value = _TAG_INVALID_RE.sub("", value)
    value = _TAG_DASHES_RE.sub(TAG_SEPARATOR, value)
    return value.strip(TAG_SEPARATOR)


def extract_query_tags(query: str) -> list[str]:
    """把查询拆成标签形态的词（西里尔字母先转写）。"""
    if not query:
        return []
    parts = _QUERY_TAG_SPLIT_RE.split(transliterate(query))
    tags = [normalize_tag(part) for part in parts]
    return list(dict.fromkeys(tag for tag in tags if tag))
