"""
Name Transliteration

Card holder names on bePaid payments are embossed Latin
(passport spelling: "SVIATLANA HANCHARUK"), while contacts are
stored in Cyrillic ("Светлана Гончарук"). Plain letter-by-letter
transliteration gets Belarusian passport spellings wrong, so known
first names and surnames are looked up in a dictionary first.
"""

import re

# =============================================================================
# LETTER MAP - Latin to Cyrillic, multi-letter keys win
# =============================================================================

TRANSLIT_MAP: dict[str, str] = {
    "SHCH": "Щ", "shch": "щ",
    "YA": "Я", "ya": "я", "IA": "Я", "ia": "я",
    "YU": "Ю", "yu": "ю", "IU": "Ю", "iu": "ю",
    "YE": "Е", "ye": "е", "IE": "Е", "ie": "е",
    "YI": "Ї", "yi": "ї",
    "ZH": "Ж", "zh": "ж",
    "KH": "Х", "kh": "х",
    "TS": "Ц", "ts": "ц",
    "CH": "Ч", "ch": "ч",
    "SH": "Ш", "sh": "ш",
    "YO": "Ё", "yo": "ё",
    "A": "А", "a": "а",
    "B": "Б", "b": "б",
    "V": "В", "v": "в",
    "W": "В", "w": "в",
    "G": "Г", "g": "г",
    "H": "Г", "h": "г",  # Belarusian H is Г
    "D": "Д", "d": "д",
    "E": "Е", "e": "е",
    "Z": "З", "z": "з",
    "I": "И", "i": "и",
    "Y": "Й", "y": "й",
    "K": "К", "k": "к",
    "L": "Л", "l": "л",
    "M": "М", "m": "м",
    "N": "Н", "n": "н",
    "O": "О", "o": "о",
    "P": "П", "p": "п",
    "R": "Р", "r": "р",
    "S": "С", "s": "с",
    "T": "Т", "t": "т",
    "U": "У", "u": "у",
    "F": "Ф", "f": "ф",
    "C": "Ц", "c": "ц",
    "'": "Ь",
}

# Longest keys first so "SHCH" is replaced before "SH" and "S"
_SORTED_KEYS = sorted(TRANSLIT_MAP, key=len, reverse=True)


# =============================================================================
# NAME DICTIONARY - passport spelling to Cyrillic
# =============================================================================

NAME_CORRECTIONS: dict[str, str] = {
    # First names
    "AKSANA": "Оксана",
    "ALENA": "Алёна",
    "ALIAKSANDRA": "Александра",
    "ANASTASIA": "Анастасия",
    "ANASTASIIA": "Анастасия",
    "ANASTASIYA": "Анастасия",
    "ANHELINA": "Ангелина",
    "ANNA": "Анна",
    "ANTANINA": "Антонина",
    "DARIA": "Дарья",
    "DARYA": "Дарья",
    "DZIYANA": "Диана",
    "EKATERINA": "Екатерина",
    "ELENA": "Елена",
    "HANNA": "Анна",
    "INNA": "Инна",
    "IRINA": "Ирина",
    "IRYNA": "Ирина",
    "KATSIARYNA": "Екатерина",
    "KRISTINA": "Кристина",
    "KRYSTYNA": "Кристина",
    "LARYSA": "Лариса",
    "LENA": "Лена",
    "LIUDMILA": "Людмила",
    "LIUDMILLA": "Людмила",
    "LUDMILA": "Людмила",
    "MARGARITA": "Маргарита",
    "MARHARYTA": "Маргарита",
    "MARIA": "Мария",
    "MARINA": "Марина",
    "MARYIA": "Мария",
    "MARYNA": "Марина",
    "NADEZHDA": "Надежда",
    "NATALLIA": "Наталья",
    "NATALIA": "Наталья",
    "NINA": "Нина",
    "OLGA": "Ольга",
    "PALINA": "Полина",
    "POLINA": "Полина",
    "SVIATLANA": "Светлана",
    "SVETLANA": "Светлана",
    "TATSIANA": "Татьяна",
    "TATIANA": "Татьяна",
    "VALERIA": "Валерия",
    "VALERYIA": "Валерия",
    "VALIANTSINA": "Валентина",
    "VALIANTSYNA": "Валентина",
    "VALENTINA": "Валентина",
    "VERANIIKA": "Вероника",
    "VERONIKA": "Вероника",
    "VIKTORIA": "Виктория",
    "VIKTORYIA": "Виктория",
    "VOLHA": "Ольга",
    "YELENA": "Елена",
    "YELIZAVETA": "Елизавета",
    "YULIYA": "Юлия",
    "YULIA": "Юлия",
    "YULIIA": "Юлия",
    "ZHANNA": "Жанна",
    "ALIAKSANDR": "Александр",
    "ALIAKSEI": "Алексей",
    "ALIAKSEJ": "Алексей",
    "ANDREI": "Андрей",
    "ANDREY": "Андрей",
    "ANTON": "Антон",
    "ARTEM": "Артём",
    "ARTSIOM": "Артём",
    "DZMITRY": "Дмитрий",
    "DMITRY": "Дмитрий",
    "HENADZ": "Геннадий",
    "HENADZI": "Геннадий",
    "IVAN": "Иван",
    "KANSTANTSIN": "Константин",
    "KIRYL": "Кирилл",
    "KIRILL": "Кирилл",
    "MAKSIM": "Максим",
    "MAXIM": "Максим",
    "MIKALAI": "Николай",
    "MIKHAIL": "Михаил",
    "MIKITA": "Никита",
    "NIKITA": "Никита",
    "PAVEL": "Павел",
    "PAVIEL": "Павел",
    "SERGEI": "Сергей",
    "SERGEY": "Сергей",
    "SIARHEI": "Сергей",
    "SIARHEY": "Сергей",
    "ULADZIMIR": "Владимир",
    "ULADZISLAU": "Владислав",
    "VADIM": "Вадим",
    "VIKTAR": "Виктор",
    "YAUHENI": "Евгений",
    "YAUHENIA": "Евгения",
    "YAUHEN": "Евгений",

    # Surnames
    "ANDREYEVA": "Андреева",
    "APANASENKO": "Апанасенко",
    "ASIPIK": "Асипик",
    "BAHATKA": "Богатка",
    "BAHDANAITS": "Богданец",
    "BANCHAK": "Банчак",
    "BARYSENKA": "Борисенко",
    "BURMISTRONAK": "Бурмистронок",
    "DABRAVOLSKAYA": "Добровольская",
    "DAMANOUSKAYA": "Домановская",
    "DOLMAT": "Долмат",
    "DRACHOVA": "Драчева",
    "DZIYANAVA": "Дьянова",
    "DZERHIALIOVA": "Дергилёва",
    "FEDORCHUK": "Федорчук",
    "FIADZKOVA": "Федькова",
    "HANCHARONAK": "Гончаренок",
    "HANCHARUK": "Гончарук",
    "HRYHORYEVA": "Григорьева",
    "HRUSHEUSKAYA": "Грушевская",
    "HUBSKAYA": "Губская",
    "HUZAVA": "Гузева",
    "KACHALAVA": "Качалова",
    "KAPTSEVICH": "Капцевич",
    "KARATSENKA": "Каратенко",
    "KAROL": "Кароль",
    "KARZHENKA": "Корженко",
    "KASTSIANIEVICH": "Кастяневич",
    "KASTSIUKOVICH": "Костюкович",
    "KASTRAMA": "Кострома",
    "KATSAPAU": "Кацапов",
    "KATSIUK": "Коцюк",
    "KAZACHOK": "Козачок",
    "KHLYSTSIKAVA": "Хлыстикова",
    "KIRICHKO": "Киричко",
    "KLIMENKA": "Клименко",
    "KRYVETSKAYA": "Криветская",
    "KUDZKO": "Кудько",
    "KUZNIATSOVA": "Кузнецова",
    "LABKO": "Лабко",
    "LAPTSIONAK": "Лапционок",
    "LARYONETS": "Ларионец",
    "MAKIENKO": "Макиенко",
    "MALASHKEVICH": "Малашкевич",
    "MIKHNEVICH": "Михневич",
    "MILYUTCHYK": "Милютчик",
    "MONICH": "Монич",
    "MAROZAVA": "Морозова",
    "NASIMAVA": "Насимова",
    "NASTASCHUK": "Настащук",
    "NOVIK": "Новик",
    "NOVIKAVA": "Новикова",
    "PADLUZHNY": "Подлужный",
    "PALCHYK": "Пальчик",
    "PAPLAUSKAYA": "Поплавская",
    "PASHKEVICH": "Пашкевич",
    "PAULIUKEVICH": "Павлюкевич",
    "PIHASHAVA": "Пигашева",
    "PIVAVAR": "Пивовар",
    "ROMANOVSKAYA": "Романовская",
    "RUBEL": "Рубель",
    "RUDENKA": "Руденко",
    "SAKHARAVA": "Сахарова",
    "SAMETS": "Самец",
    "SHAUCHENKA": "Шовченко",
    "SHEKH": "Шех",
    "SHIRSHOVA": "Ширшова",
    "SIARHEICHYK": "Сергейчик",
    "SINITSKAYA": "Синицкая",
    "STASIUKEVICH": "Стасюкевич",
    "STSIAZHKO": "Стежко",
    "STRELNIKOVA": "Стрельникова",
    "TRUBNIKAVA": "Трубникова",
    "TSARENIA": "Царенко",
    "TSIMAFEYENKA": "Тимофеенко",
    "URBAN": "Урбан",
    "VARABEI": "Воробей",
    "VATSLAVAVA": "Вацлавова",
    "VYSOTSKAYA": "Высоцкая",
    "YERASTAVA": "Ерастова",
    "YEFIMCHIK": "Ефимчик",
    "YERMAKOVA": "Ермакова",
    "ZALEUSKAYA": "Залевская",
    "ZHOLUDZ": "Жолудь",
    "ZIALIONENKAYA": "Зелененькая",
    "AKSIANIUK": "Аксенюк",
}


def _build_reverse_map() -> dict[str, str]:
    reverse: dict[str, str] = {}
    for latin, cyrillic in TRANSLIT_MAP.items():
        if latin == latin.lower() and cyrillic not in reverse:
            reverse[cyrillic] = latin
    reverse.update({
        "А": "A", "Б": "B", "В": "V", "Г": "G", "Д": "D", "Е": "E",
        "Ё": "YO", "Ж": "ZH", "З": "Z", "И": "I", "Й": "Y", "К": "K",
        "Л": "L", "М": "M", "Н": "N", "О": "O", "П": "P", "Р": "R",
        "С": "S", "Т": "T", "У": "U", "Ф": "F", "Х": "KH", "Ц": "TS",
        "Ч": "CH", "Ш": "SH", "Щ": "SHCH", "Ы": "Y", "Ь": "'", "Э": "E",
        "Ю": "YU", "Я": "YA",
    })
    return reverse


REVERSE_MAP = _build_reverse_map()


def transliterate_to_cyrillic(latin_name: str) -> str:
    """
    Transliterate a Latin card holder name to Cyrillic.

    Each word is looked up in NAME_CORRECTIONS first, then falls back
    to letter-by-letter replacement and is capitalized.

        >>> transliterate_to_cyrillic("SVIATLANA IVANOVA")
        'Светлана Иванова'
    """
    if not latin_name:
        return ""

    words = []
    for word in latin_name.split(" "):
        known = NAME_CORRECTIONS.get(word.upper())
        if known:
            words.append(known)
            continue

        result = word
        for key in _SORTED_KEYS:
            result = result.replace(key, TRANSLIT_MAP[key])
        words.append(result[:1].upper() + result[1:].lower())

    return " ".join(words)


def transliterate_to_latin(cyrillic_name: str) -> str:
    """Transliterate a Cyrillic name to Latin, letter by letter."""
    if not cyrillic_name:
        return ""
    return "".join(REVERSE_MAP.get(char, char) for char in cyrillic_name)


def _normalize(name: str) -> str:
    # Letters and whitespace only
    return re.sub(r"[^\w\s]|[\d_]", "", name.lower()).strip()


def names_match(name1: str, name2: str) -> bool:
    """
    Fuzzy comparison of two person names.

    Names match when they are identical after normalization, or when
    at least two significant words (longer than 2 letters) of the
    shorter name are contained in words of the longer one. Word order
    does not matter, so "Гончарук Светлана" matches "Светлана Гончарук".
    """
    if not name1 or not name2:
        return False

    n1 = _normalize(name1)
    n2 = _normalize(name2)

    if n1 == n2:
        return True

    words1 = [w for w in n1.split() if len(w) > 2]
    words2 = [w for w in n2.split() if len(w) > 2]

    if len(words1) < 2 or len(words2) < 2:
        return False

    if len(words1) <= len(words2):
        shorter, longer = words1, words2
    else:
        shorter, longer = words2, words1

    match_count = sum(
        1 for w in shorter
        if any(lw in w or w in lw for lw in longer)
    )
    return match_count >= 2


def match_card_name_to_profile(card_name: str, profile_name: str) -> bool:
    """
    Whether a Latin card holder name belongs to a Cyrillic profile name.

    Tries the card name transliterated to Cyrillic first, then the
    profile name transliterated to Latin.
    """
    if not card_name or not profile_name:
        return False

    if names_match(transliterate_to_cyrillic(card_name), profile_name):
        return True

    latin_profile = transliterate_to_latin(profile_name)
    return names_match(card_name.upper(), latin_profile.upper())
