"""Women's-health synonym clusters used for query expansion.

Keys are lower-case single terms or phrases; a query term only expands
when it equals a key exactly.
"""

from __future__ import annotations

SYNONYM_MAP: dict[str, tuple[str, ...]] = {
    # Menstrual cycle
    "period": ("menstrual", "menstruation", "menses", "cycle"),
    "menstrual": ("period", "menstruation", "menses", "cycle"),
    "menstruation": ("period", "menstrual", "menses", "cycle"),
    "menses": ("period", "menstrual", "menstruation", "cycle"),
    "cycle": ("period", "menstrual", "menstruation", "menses"),
    # Urinary
    "uti": ("urinary tract infection", "dysuria", "urination", "bladder"),
    "urinary tract infection": ("uti", "dysuria", "urination", "bladder"),
    "dysuria": ("uti", "urinary tract infection", "burning", "urination"),
    "burning": ("dysuria", "uti", "urinary tract infection"),
    # Pelvic
    "pelvic": ("lower abdominal", "pelvis", "pelvic area"),
    "lower abdominal": ("pelvic", "pelvis", "abdominal"),
    "pelvis": ("pelvic", "lower abdominal"),
    # Cramps
    "cramp": ("cramping", "pain", "discomfort"),
    "cramps": ("cramp", "cramping", "pain", "discomfort"),
    "cramping": ("cramp", "pain", "discomfort"),
    # Discharge
    "discharge": ("vaginal discharge", "secretion"),
    "vaginal discharge": ("discharge", "secretion"),
    # Ovulation
    "ovulation": ("ovulatory", "fertile window"),
    "ovulatory": ("ovulation", "fertile window"),
    # PMS
    "pms": ("premenstrual syndrome", "premenstrual"),
    "premenstrual syndrome": ("pms", "premenstrual"),
    "premenstrual": ("pms", "premenstrual syndrome"),
    # Infections
    "yeast infection": ("candidiasis", "yeast", "thrush"),
    "candidiasis": ("yeast infection", "yeast", "thrush"),
    "bacterial vaginosis": ("bv", "vaginal infection"),
    "bv": ("bacterial vaginosis", "vaginal infection"),
    # Conditions
    "endometriosis": ("endo",),
    "endo": ("endometriosis",),
    "pcos": ("polycystic ovary syndrome", "polycystic"),
    "polycystic ovary syndrome": ("pcos", "polycystic"),
    "polycystic": ("pcos", "polycystic ovary syndrome"),
    # Fatigue
    "fatigue": ("tiredness", "exhaustion", "weakness", "low energy"),
    "tiredness": ("fatigue", "exhaustion", "weakness"),
    "exhaustion": ("fatigue", "tiredness", "weakness"),
    # Mood
    "mood": ("mood changes", "mood swings", "irritability"),
    "mood changes": ("mood swings", "mood", "emotional changes", "irritability"),
    "mood swings": ("mood changes", "mood", "emotional changes"),
    "irritability": ("mood changes", "mood swings", "mood"),
    # Headache
    "headache": ("head pain", "migraine", "head ache"),
    "migraine": ("headache", "head pain"),
    # Bloating
    "bloating": ("bloated", "abdominal bloating", "swelling", "gas"),
    "bloated": ("bloating", "abdominal bloating", "swelling"),
    # Nausea
    "nausea": ("queasiness", "feeling sick", "sick to stomach"),
    "queasiness": ("nausea", "feeling sick"),
    # Bleeding
    "bleeding": ("blood", "hemorrhage", "menstrual bleeding", "spotting"),
    "spotting": ("bleeding", "blood"),
    "heavy bleeding": ("menorrhagia", "excessive bleeding", "bleeding"),
    # Breast
    "breast tenderness": ("breast pain", "mastalgia", "sore breasts", "breast discomfort"),
    "breast pain": ("breast tenderness", "mastalgia", "sore breasts"),
    "mastalgia": ("breast tenderness", "breast pain"),
    # Back
    "back pain": ("backache", "lower back pain", "spine pain"),
    "backache": ("back pain", "lower back pain"),
    # Joints
    "joint pain": ("arthritis", "joint stiffness", "joint discomfort"),
    "arthritis": ("joint pain", "joint stiffness"),
    # Sleep
    "sleep issues": ("insomnia", "sleep problems", "sleep disturbances", "trouble sleeping"),
    "insomnia": ("sleep issues", "sleep problems", "trouble sleeping"),
    "sleep problems": ("sleep issues", "insomnia", "sleep disturbances"),
    # Digestive
    "digestive issues": ("digestive problems", "ibs", "irritable bowel", "stomach problems"),
    "digestive problems": ("digestive issues", "ibs", "irritable bowel"),
    "ibs": ("irritable bowel syndrome", "digestive issues", "digestive problems"),
    "irritable bowel syndrome": ("ibs", "digestive issues"),
    # Generic pain
    "pain": ("discomfort", "ache", "soreness", "hurting"),
    "discomfort": ("pain", "ache", "soreness"),
}
