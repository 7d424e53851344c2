"""
分类同义词表与查询变体生成

每个分类有自己的 synonyms / brands / attributes 三张表；未指定分类时查全部分类。
表里的词在加载时统一做 normalize_text，匹配时只比较规范化后的形态。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from app.ranking.normalization import normalize_text, transliterate


@dataclass(frozen=True)
class CategorySynonymConfig:
    category: str
    synonyms: dict[str, tuple[str, ...]] = field(default_factory=dict)
    brands: dict[str, tuple[str, ...]] = field(default_factory=dict)
    attributes: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def groups(self) -> Iterable[tuple[str, tuple[str, ...]]]:
        yield from self.synonyms.items()
        yield from self.brands.items()
        yield from self.attributes.items()


def _table(raw: dict[str, list[str]]) -> dict[str, tuple[str, ...]]:
    table: dict[str, tuple[str, ...]] = {}
    for key, values in raw.items():
        canonical = normalize_text(key)
        normalized = [normalize_text(v) for v in values]
        table[canonical] = tuple(dict.fromkeys(v for v in normalized if v and v != canonical))
    return table


CLOTHING = CategorySynonymConfig(
    category="clothing",
    synonyms=_table({
        # 鞋
        "krossovka": ["krassofka", "krasofka", "krassovka", "krosovka", "krosvka", "sport oyoq kiyim",
                      "sportivka", "sneaker", "sniker", "кроссовки", "кроссовка"],
        "tufli": ["tufla", "туфли", "туфля", "klasik oyoq kiyim"],
        "botinka": ["batinka", "botinki", "bootinki", "ботинки", "ботинка", "qish oyoq kiyim"],
        "shippak": ["shlepka", "shlepki", "tapochki", "тапочки", "шлепки"],
        "keds": ["kedsi", "кеды", "kedi"],
        "sandal": ["sandaliya", "sandali", "сандалии", "yoz oyoq kiyim"],
        "etik": ["сапоги", "sapogi", "uzun botinka"],
        # 上装
        "futbolka": ["futbalka", "футболка", "t-shirt", "tshirt", "mayka", "майка"],
        "ko'ylak": ["kuylak", "koylak", "ko`ylak", "рубашка", "rubashka", "shirt"],
        "kurtka": ["kurtki", "куртка", "jacket", "jaket"],
        "palto": ["пальто", "coat", "plashch"],
        "sviter": ["svetr", "свитер", "sweater", "jumper", "пуловер"],
        "hoodie": ["xudi", "худи", "tolstovka", "толстовка", "kapushonli"],
        # 下装
        "jinsi": ["jeans", "джинсы", "jinsa", "jinsy", "jins"],
        "shim": ["штаны", "брюки", "bryuki", "shimlar", "pants", "trouser"],
        "shorty": ["shorts", "шорты", "qisqa shim"],
        "yubka": ["юбка", "skirt", "jupka"],
        # 套装
        "kostyum": ["костюм", "suit", "kastyum"],
        "sport forma": ["спортивный костюм", "sportivniy", "trenirovka kiyimi"],
        "ko'ylak-libos": ["платье", "dress", "platie"],
        # 配饰
        "bosh kiyim": ["шапка", "shapka", "kepka", "кепка", "hat", "cap"],
        "kamar": ["ремень", "belt", "remen", "kamarcha"],
        "sumka": ["сумка", "bag", "ryukzak", "рюкзак", "backpack"],
        "sharf": ["шарф", "scarf"],
    }),
    brands=_table({
        "nike": ["nayk", "найк", "найки", "nayki", "naik", "naike", "nyke"],
        "adidas": ["адидас", "adidos", "addidas", "adidass", "adik"],
        "puma": ["пума", "pyma", "pumu"],
        "reebok": ["рибок", "ribok", "ribak"],
        "new balance": ["newbalance", "нью баланс", "nyubalans", "new balans"],
        "zara": ["зара", "zarah"],
        "h&m": ["hm", "h and m", "эйч энд эм"],
        "gucci": ["гуччи", "guchi", "guchchi"],
        "louis vuitton": ["луи виттон", "lui vitton", "louis vitton"],
        "chanel": ["шанель", "shanel"],
        "versace": ["версаче", "versachi"],
        "armani": ["армани", "armony", "armoni"],
        "tommy hilfiger": ["томми хилфигер", "tommi", "hilfiger"],
        "lacoste": ["лакост", "lakost", "lacost"],
        "levis": ["левис", "левайс", "levi's"],
        "columbia": ["коламбия", "columbi"],
        "the north face": ["north face", "норт фейс", "tnf"],
    }),
    attributes=_table({
        "erkak": ["erkaklar", "мужской", "men", "muzhskoy"],
        "ayol": ["ayollar", "женский", "women", "zhenskiy"],
        "bola": ["bolalar", "детский", "kids", "detskiy", "children"],
        "original": ["оригинал", "asl", "genuine"],
        "replika": ["replica", "nusxa", "реплика", "kopiya"],
        "yangi": ["new", "новый", "new with tags"],
        "ishlatilgan": ["used", "б/у", "second hand"],
    }),
)

ELECTRONICS = CategorySynonymConfig(
    category="electronics",
    synonyms=_table({
        "telefon": ["телефон", "phone", "smartphone", "смартфон", "smartfon", "mobil"],
        "noutbuk": ["notebook", "ноутбук", "laptop", "лептоп"],
        "televizor": ["телевизор", "tv", "televizr", "telik"],
        "planshet": ["планшет", "tablet", "ipad", "айпад"],
        "naushnik": ["наушники", "headphones", "quloqchin", "airpods", "earphones"],
        "kamera": ["camera", "камера", "fotoaparat", "фотоаппарат"],
        "printer": ["принтер", "printerlar"],
        "proyektor": ["проектор", "projector"],
    }),
    brands=_table({
        "samsung": ["самсунг", "sumsung", "samsunk", "samsng"],
        "apple": ["эпл", "iphone", "айфон", "ayfon", "macbook", "макбук"],
        "xiaomi": ["сяоми", "шаоми", "xiomi", "shaomi", "redmi", "редми", "poco"],
        "huawei": ["хуавей", "huavey", "хуавэй"],
        "oppo": ["оппо"],
        "vivo": ["виво"],
        "realme": ["реалми", "realmi"],
        "sony": ["сони"],
        "asus": ["асус"],
        "lenovo": ["леново", "lenova"],
        "hp": ["эйчпи", "hewlett packard"],
        "dell": ["делл"],
        "acer": ["асер", "эйсер"],
    }),
    attributes=_table({
        "yangi": ["new", "новый", "zapechatan"],
        "ishlatilgan": ["б/у", "used", "second hand"],
        "garantiya": ["гарантия", "warranty", "kafolat"],
    }),
)

AUTOMOTIVE = CategorySynonymConfig(
    category="automotive",
    synonyms=_table({
        "mashina": ["машина", "car", "avtomobil", "автомобиль", "avto"],
        "mototsikl": ["мотоцикл", "motorcycle", "moto", "байк"],
        "velosiped": ["велосипед", "bicycle", "velo"],
        "yuk mashina": ["грузовик", "truck", "fura", "kamaz"],
        "avtobus": ["автобус", "bus"],
    }),
    brands=_table({
        "nexia": ["нексия", "neksiya", "neksia", "daewoo nexia"],
        "cobalt": ["кобальт", "cobolt", "kobalt"],
        "lacetti": ["лачетти", "lachetti", "lacety", "gentra"],
        "malibu": ["малибу", "malibo", "maliby"],
        "spark": ["спарк"],
        "matiz": ["матиз", "matiss"],
        "damas": ["дамас", "damass"],
        "toyota": ["тойота", "tayota", "toiota"],
        "hyundai": ["хундай", "хюндай", "hundai", "hyunday"],
        "kia": ["киа", "kiya"],
        "mercedes": ["мерседес", "mersedes", "benz", "мерс"],
        "bmw": ["бмв", "bexa"],
        "chevrolet": ["шевроле", "shevrolet"],
    }),
    attributes=_table({
        "yangi": ["new", "новый", "0 probeg"],
        "probeg": ["пробег", "mileage"],
        "avtomat": ["автомат", "automatic"],
        "mexanika": ["механика", "manual", "ruchnoy"],
    }),
)

REAL_ESTATE = CategorySynonymConfig(
    category="realestate",
    synonyms=_table({
        "kvartira": ["квартира", "apartment", "flat", "xonadon"],
        "uy": ["дом", "house", "hovli"],
        "ofis": ["офис", "office"],
        "magazin": ["магазин", "shop", "dokon", "store"],
        "yer": ["земля", "land", "участок", "uchastok"],
        "garaj": ["гараж", "garage"],
    }),
    attributes=_table({
        "ijara": ["аренда", "rent", "sutkalik", "sutkaga"],
        "sotiladi": ["продажа", "sale", "sotish"],
        "yangi": ["новостройка", "novostroy", "yangi qurilish"],
        "tamir": ["ремонт", "repair", "remont", "evro remont"],
    }),
)

ALL_CATEGORIES: tuple[CategorySynonymConfig, ...] = (CLOTHING, ELECTRONICS, AUTOMOTIVE, REAL_ESTATE)

CATEGORY_ALIASES: dict[str, CategorySynonymConfig] = {
    "clothing": CLOTHING,
    "kiyim-kechak": CLOTHING,
    "kiyim": CLOTHING,
    "electronics": ELECTRONICS,
    "elektronika": ELECTRONICS,
    "automotive": AUTOMOTIVE,
    "transport": AUTOMOTIVE,
    "avtomobil": AUTOMOTIVE,
    "realestate": REAL_ESTATE,
    "uy-joy": REAL_ESTATE,
    "kvartira": REAL_ESTATE,
}

# 常见拼写错误 → 正确写法
COMMON_TYPOS: dict[str, str] = {
    "krossofka": "krossovka",
    "krasovka": "krossovka",
    "korssovka": "krossovka",
    "korsovka": "krossovka",
    "krosovka": "krossovka",
    "futbolga": "futbolka",
    "fotbolka": "futbolka",
    "shimlar": "shim",
    "jinslar": "jinsi",
    "botinkalar": "botinka",
    "adiddas": "adidas",
    "nikke": "nike",
}

# 商品成色关键词（用于 condition 加分）
CONDITION_GROUPS: dict[str, tuple[str, ...]] = {
    "yangi": ("yangi", "new", "новый"),
    "ishlatilgan": ("ishlatilgan", "used", "б/у"),
    "original": ("original", "оригинал", "asl"),
}


def get_category_config(category: Optional[str]) -> Optional[CategorySynonymConfig]:
    if not category:
        return None
    return CATEGORY_ALIASES.get(category.strip().lower())


def correct_typo(word: str) -> str:
    normalized = normalize_text(word)
    return COMMON_TYPOS.get(normalized, normalized)


def find_related_terms(term: str, configs: Iterable[CategorySynonymConfig]) -> list[str]:
    """term 命中某组（key 或任一 value）时返回整组词。"""
    related: list[str] = []
    if not term:
        return related
    for config in configs:
        for key, values in config.groups():
            if term == key or term in values:
                related.append(key)
                related.extend(values)
    return list(dict.fromkeys(related))


def build_search_variations(query: str, category: Optional[str] = None) -> list[str]:
    """
    查询变体集合（不含规范化后的原查询本身）

    来源：转写形态、拼写纠正、同义词 / 品牌别名 / 属性别名；多词查询额外加入单词本身。
    """
    normalized = normalize_text(query)
    if not normalized:
        return []

    config = get_category_config(category)
    configs = (config,) if config else ALL_CATEGORIES

    lookup_terms: list[str] = [normalized]
    transliterated = transliterate(query)
    if transliterated:
        lookup_terms.append(transliterated)
    lookup_terms.append(correct_typo(normalized))

    words = [w for w in normalized.split(" ") if len(w) > 1]
    if len(words) > 1:
        for word in words:
            lookup_terms.append(word)
            lookup_terms.append(correct_typo(word))

    variations: dict[str, None] = {}
    for term in lookup_terms:
        variations[term] = None
        for related in find_related_terms(term, configs):
            variations[related] = None

    variations.pop(normalized, None)
    return [v for v in variations if v]


def find_condition_groups(text: str) -> set[str]:
    normalized = normalize_text(text)
    if not normalized:
        return set()
    padded = f" {normalized} "
    found: set[str] = set()
    for group, keywords in CONDITION_GROUPS.items():
        for keyword in keywords:
            if f" {normalize_text(keyword)} " in padded:
                found.add(group)
                break
    return found
