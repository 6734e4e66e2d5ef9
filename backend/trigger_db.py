"""Safe Scroll - Trigger Database
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Manages the trigger categories and signal vocabularies.
Think of this like an antivirus definition database, but for
psychologically harmful social-media content.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from models import TriggerCategory

logger = logging.getLogger(__name__)

# Defaults applied to categories created at runtime by configuration updates
DEFAULT_BASE_WEIGHT = 15
DEFAULT_SENSITIVITY = 75
MIN_SENSITIVITY = 25
MAX_SENSITIVITY = 100

GENERIC_REASON = "Conteúdo potencialmente nocivo detectado pela análise psicológica"


def build_categories(raw: dict[str, dict]) -> list[TriggerCategory]:
    """
    Build ordered categories from raw definitions.

    Phrases are lower-cased and de-duplicated. A phrase already claimed by
    an earlier category is dropped from later ones so that every phrase
    belongs to exactly one category.
    """
    claimed: set[str] = set()
    categories = []

    for name, data in raw.items():
        if not isinstance(data, dict):
            raise TypeError(f"Category '{name}' must be an object, got {type(data).__name__}")
        raw_phrases = data.get("phrases", [])
        if not isinstance(raw_phrases, list):
            raise TypeError(f"Phrases of '{name}' must be a list")

        phrases = []
        for phrase in raw_phrases:
            normalized = str(phrase).strip().lower()
            if not normalized:
                continue
            if normalized in claimed:
                logger.debug(f"Phrase '{normalized}' already claimed, skipping in {name}")
                continue
            claimed.add(normalized)
            phrases.append(normalized)

        sensitivity = int(data.get("sensitivity", DEFAULT_SENSITIVITY))
        categories.append(TriggerCategory(
            name=name,
            phrases=tuple(phrases),
            base_weight=int(data.get("base_weight", DEFAULT_BASE_WEIGHT)),
            sensitivity=max(MIN_SENSITIVITY, min(MAX_SENSITIVITY, sensitivity)),
            multiplier=float(data.get("multiplier", 1.0)),
            display_name=data.get("display_name") or name.replace("_", " ").title(),
            reason=data.get("reason") or GENERIC_REASON,
        ))

    return categories


def _unique(items: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def _string_list(value) -> Optional[list[str]]:
    """Missing gives [], a list of strings is returned as is, anything else gives None"""
    if value is None:
        return []
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    return None


class TriggerDatabase:
    """
    Manages the trigger database.

    Each category includes:
    - Trigger phrases (matched by substring)
    - Base weight and sensitivity
    - Severity multiplier
    - Display name and canned reason

    Emoji and hashtag vocabularies are kept apart from the categories;
    they feed the contextual signal pass only.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize and load categories from db_path (defaults to trigger-db/)."""
        if db_path is None:
            db_path = Path(__file__).parent.parent / "trigger-db"

        self.db_path = Path(db_path)
        self.categories: list[TriggerCategory] = []
        self.toxic_emojis: tuple[str, ...] = ()
        self.toxic_hashtags: tuple[str, ...] = ()

        self._load_database()

    def _load_database(self) -> None:
        """Load categories and signal vocabularies from JSON files"""
        categories_file = self.db_path / "categories.json"
        raw_categories = self._read_json(categories_file)
        self.categories = []
        if raw_categories:
            try:
                self.categories = build_categories(raw_categories)
            except (TypeError, ValueError, AttributeError) as e:
                logger.error(f"Invalid category definitions in {categories_file}: {e}")
        if not self.categories:
            self.categories = build_categories(self._get_default_categories())

        signals_file = self.db_path / "signals.json"
        signals = self._read_json(signals_file) or {}
        emojis = _string_list(signals.get("toxic_emojis"))
        hashtags = _string_list(signals.get("toxic_hashtags"))
        if signals and (emojis is None or hashtags is None):
            logger.error(f"Invalid signal vocabularies in {signals_file}, using defaults where needed")

        self.toxic_emojis = _unique(emojis or self._get_default_emojis())
        self.toxic_hashtags = _unique([h.lower() for h in (hashtags or self._get_default_hashtags())])

        logger.info(f"📚 Trigger database loaded: {len(self.categories)} categories, "
                    f"{sum(len(c.phrases) for c in self.categories)} phrases")

    def _read_json(self, path: Path) -> Optional[dict]:
        """Read a JSON object from path. Missing, unreadable or non-object files give None."""
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Error loading {path}: expected a JSON object, got {type(data).__name__}")
            return None
        return data

    def get_categories(self) -> list[TriggerCategory]:
        """Return all categories in evaluation order"""
        return list(self.categories)

    def _get_default_categories(self) -> dict:
        """
        Default trigger categories, in evaluation order.
        The first category to match sets the primary category of a result.
        """
        return {
            "comparison": {
                "display_name": "Comparação Social",
                "reason": "Conteúdo pode gerar comparação social prejudicial, baixa autoestima e sentimentos de inadequação",
                "base_weight": 23,
                "sensitivity": 88,
                "multiplier": 1.0,
                "phrases": [
                    # Direct comparison (PT)
                    "vida perfeita", "sucesso extremo", "blessed", "richlife", "lifestyle perfeito",
                    "relacionamento perfeito", "viagem dos sonhos", "casa dos sonhos",
                    "carro novo", "marca de luxo", "riqueza", "conquista", "achievement",
                    "melhor que", "superior", "único", "especial", "privilegiado", "inveja",
                    "todos querem", "ninguém tem", "só eu tenho", "consegui", "conquistei",
                    "mereço", "trabalho duro", "esforço", "dedicação", "foco", "determinação",
                    # Subtle display (PT)
                    "vale a pena", "investimento", "qualidade", "exclusivo", "premium",
                    "primeira classe", "vip", "elite", "top", "high end", "sofisticado",
                    # Direct comparison (EN)
                    "perfect life", "extreme success", "blessed life", "rich lifestyle",
                    "perfect relationship", "dream vacation", "dream house",
                    "new car", "luxury brand", "wealth", "accomplished",
                    "better than", "unique", "special", "privileged", "envy",
                    "everyone wants", "nobody has", "only i have", "achieved", "conquered",
                    # Subtle display (EN)
                    "worth it", "investment", "quality", "exclusive",
                    "first class", "top tier", "sophisticated",
                ],
            },
            "anxiety": {
                "display_name": "Ansiedade/FOMO",
                "reason": "Detectados indutores de ansiedade, FOMO e pressão social que podem causar estresse",
                "base_weight": 20,
                "sensitivity": 92,
                "multiplier": 1.1,
                "phrases": [
                    # Urgency and scarcity (PT)
                    "fomo", "urgência", "limitado", "apenas hoje", "última chance", "vai acabar",
                    "você está perdendo", "todos estão fazendo", "não perca",
                    "pressa", "ansiedade", "desespero",
                    "agora ou nunca", "não vai durar", "oportunidade única", "imperdível",
                    # Social pressure (PT)
                    "todo mundo tem", "normal ter", "óbvio que", "qualquer um consegue",
                    "até eu consegui", "se eu consegui", "todo mundo faz", "é básico",
                    # Urgency and scarcity (EN)
                    "limited edition", "sold out", "running out", "deadline", "pressure",
                    "urgency", "only today", "last chance", "you are missing",
                    "everyone is doing", "dont miss", "hurry", "anxiety", "stress",
                    "overwhelmed", "panic", "desperation", "now or never", "wont last",
                    "unique opportunity", "must have",
                    # Social pressure (EN)
                    "everyone has", "normal to have", "obvious that", "anyone can",
                    "even i could", "if i can", "everyone does", "its basic",
                ],
            },
            "depression": {
                "display_name": "Risco de Depressão",
                "reason": "Conteúdo potencialmente depressivo que pode afetar humor, autoestima e bem-estar mental",
                "base_weight": 28,
                "sensitivity": 96,
                "multiplier": 1.3,
                "phrases": [
                    # Self-deprecation (PT)
                    "não sou suficiente", "por que eu não tenho", "minha vida é um fracasso",
                    "nunca vou conseguir", "sou um perdedor", "todo mundo menos eu",
                    "não mereço", "sou inadequado", "sem esperança", "sem sentido",
                    "vazio", "quebrado", "inútil", "fracasso", "desistir", "sem valor",
                    "não sirvo", "sou burro", "sou feio", "ninguém me ama", "sozinho",
                    # Hopelessness (PT)
                    "nunca vai melhorar", "sempre assim", "sem saída", "sem futuro",
                    "não adianta", "para que tentar", "não vale a pena",
                    # Self-deprecation (EN)
                    "not enough", "why dont i have", "my life is a failure",
                    "never going to make it", "i am a loser", "everyone but me",
                    "dont deserve", "inadequate", "hopeless", "meaningless",
                    "empty", "broken", "worthless", "failure", "give up", "no value",
                    "not good", "stupid", "ugly", "nobody loves me", "alone",
                    # Hopelessness (EN)
                    "never get better", "always like this", "no way out", "no future",
                    "no point", "why try", "not worth it",
                ],
            },
            "bodyImage": {
                "display_name": "Imagem Corporal",
                "reason": "Trigger de imagem corporal que pode causar dismorfia, insatisfação e transtornos alimentares",
                "base_weight": 25,
                "sensitivity": 90,
                "multiplier": 1.2,
                "phrases": [
                    # Body standards (PT)
                    "corpo perfeito", "corpo dos sonhos", "transformação radical", "antes e depois",
                    "peso ideal", "bodygoals", "fitness inspiration", "summer body",
                    "bikini body", "abs", "sixpack", "diet", "skinny", "magra", "gorda",
                    "fat loss", "muscle gain", "transformation", "glow up", "makeover",
                    "shape", "forma física", "medidas", "silhueta",
                    "barriga chapada", "pernas torneadas", "bumbum empinado", "seios perfeitos",
                    # Extreme diets and training (PT)
                    "dieta radical", "jejum", "detox", "cleanse", "cutting", "bulking",
                    "treino pesado", "no pain no gain", "sem dor sem ganho", "sacrifício",
                    "disciplina extrema", "foco total", "meta corporal", "objetivo físico",
                    # Body standards (EN)
                    "perfect body", "dream body", "radical transformation", "before and after",
                    "ideal weight", "body goals", "six pack", "fat", "thin",
                    "perfect shape", "body measurements", "silhouette", "curves",
                    # Extreme diets and training (EN)
                    "radical diet", "fasting", "intense workout", "sacrifice",
                    "extreme discipline", "total focus", "body goal", "physical objective",
                    "fitness target",
                ],
            },
            "materialism": {
                "display_name": "Materialismo Excessivo",
                "reason": "Conteúdo materialista que pode gerar insatisfação financeira e pressão consumista",
                "base_weight": 18,
                "sensitivity": 78,
                "multiplier": 0.8,
                "phrases": [
                    # Purchases and display (PT)
                    "nova compra", "produto caro", "vale muito", "investimento caro",
                    "marca cara", "me dei de presente", "gosto caro",
                    "comprei", "gastei", "paguei", "custou", "valeu cada centavo",
                    # Status and luxury (PT)
                    "cinco estrelas", "hotel de luxo", "massagem", "tratamento",
                    "motorista particular",
                    # Purchases and display (EN)
                    "new purchase", "expensive product", "worth a lot", "expensive investment",
                    "shopping", "haul", "expensive", "luxury", "designer", "expensive brand",
                    "brand new", "splurge", "treat myself", "gave myself",
                    "money spent", "cost", "price", "expensive taste", "bought", "paid",
                    # Status and luxury (EN)
                    "business class", "five star", "luxury hotel",
                    "resort", "spa", "massage", "treatment", "personal trainer",
                    "personal chef", "private driver", "concierge", "vip treatment",
                ],
            },
            "ostentation": {
                "display_name": "Ostentação",
                "reason": "Exibição de conquistas e bens que pode provocar inveja e sensação de inferioridade",
                "base_weight": 15,
                "sensitivity": 82,
                "multiplier": 1.0,
                "phrases": [
                    # Direct display (PT)
                    "olhem meu", "vejam minha", "consegui comprar", "acabei de ganhar",
                    "meu novo", "minha nova", "finalmente consegui", "me dei o luxo",
                    "posso pagar", "caro mas vale", "dinheiro bem gasto",
                    "não é pra qualquer um", "poucos podem", "exclusividade", "raridade",
                    # Humble bragging (PT)
                    "não quero me gabar mas", "com toda humildade", "sem querer me exibir",
                    "por acaso consegui", "sorte minha", "ainda não caiu a ficha",
                    "sonho realizado",
                    # Direct display (EN)
                    "look at my", "check out my", "just bought", "just got",
                    "my new", "finally got", "treated myself", "can afford",
                    "expensive but worth it", "money well spent",
                    "not for everyone", "few can", "exclusivity", "rarity",
                    # Humble bragging (EN)
                    "not to brag but", "humbly speaking", "dont want to show off",
                    "happened to get", "lucky me", "still processing", "dream come true",
                ],
            },
        }

    def _get_default_emojis(self) -> list[str]:
        """Status and celebration emojis counted by the density signal"""
        return [
            "💎", "🏖️", "✨", "🚗", "🏠", "💰", "👑", "🔥", "💪", "🎉",
            "🏆", "💯", "🤑", "💸", "🥇", "⭐", "🌟", "💫", "🎯", "🚀",
            "🎖️", "🏅", "🎗️", "🎊", "🎈", "🍾", "🥂", "🍸", "🍷", "🥃",
            "🍻", "🎂", "🧁", "🍰", "🍭", "🍫",
        ]

    def _get_default_hashtags(self) -> list[str]:
        return [
            # Lifestyle and display
            "#blessed", "#richlife", "#luxury", "#expensive", "#perfect",
            "#goals", "#rich", "#money", "#success", "#winning", "#winner",
            "#lifestyle", "#flexing", "#showoff", "#humblebrag", "#flex",
            "#richkid", "#luxurylife", "#moneytalks", "#successmindset",
            "#millionaire", "#billionaire", "#wealth", "#prosperity",
            # Body and fitness
            "#bodygoals", "#fitspiration", "#thinspiration", "#perfectbody",
            "#summerready", "#bikinibody", "#abs", "#sixpack", "#transformation",
            "#beforeandafter", "#weightloss", "#fatloss", "#musclegain",
            "#fitnessmotivation", "#workoutmotivation", "#gymlife", "#fitlife",
            # Materialism
            "#shopping", "#haul", "#newpurchase", "#designer", "#brand",
            "#fashion", "#style", "#trendy", "#musthave", "#worthit",
            "#investment", "#quality", "#premium",
            # FOMO and anxiety
            "#fomo", "#dontmiss", "#limited", "#exclusive", "#vip",
            "#lastchance", "#urgent", "#deadline", "#pressure", "#stress",
        ]
