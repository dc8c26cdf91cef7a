"""
Classifieur de topic: mots-clés sur le titre et la description.

Fonction pure, sans état. On ne charge pas de modèle entraîné:
spacy.blank("en") suffit pour découper le texte en tokens.
"""

from collections import Counter
from typing import Dict, List, Set

import spacy

from taskboard.models.task import Topic

nlp = spacy.blank("en")

# ordre = priorité en cas d'égalité
TOPIC_KEYWORDS: Dict[Topic, Set[str]] = {
    Topic.BUGFIX: {
        "bug", "fix", "crash", "error", "broken", "regression", "hotfix", "failing", "issue", "exception",
    },
    Topic.TESTING: {
        "test", "testing", "pytest", "jest", "coverage", "e2e", "unittest", "qa", "assert", "fixture",
    },
    Topic.FRONTEND: {
        "ui", "ux", "frontend", "react", "css", "tailwind", "component", "layout", "theme", "html",
        "button", "dashboard", "timeline", "card", "modal", "style",
    },
    Topic.BACKEND: {
        "api", "backend", "server", "endpoint", "database", "db", "sql", "schema", "websocket",
        "rest", "auth", "migration", "query", "cache", "route",
    },
    Topic.INFRA: {
        "deploy", "deployment", "docker", "ci", "pipeline", "kubernetes", "k8s", "infra", "terraform",
        "release", "workflow", "github", "repo", "branch", "build", "packaging",
    },
    Topic.DOCS: {
        "doc", "docs", "documentation", "readme", "guide", "changelog", "tutorial", "spec", "wiki",
    },
    Topic.RESEARCH: {
        "research", "investigate", "explore", "spike", "prototype", "evaluate", "compare", "study",
        "analysis", "benchmark", "poc",
    },
}

TITLE_WEIGHT = 2


def tokenize(text: str) -> List[str]:
    if not text:
        return []
    doc = nlp(text.lower())
    return [tok.text for tok in doc if not (tok.is_punct or tok.is_space)]


def _normalize(token: str) -> str:
    # pluriels simples: "tests" -> "test", "bugs" -> "bug"
    if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def score_topics(title: str, description: str = "") -> Counter:
    scores: Counter = Counter()
    weighted = [(tok, TITLE_WEIGHT) for tok in tokenize(title)] + [(tok, 1) for tok in tokenize(description)]
    for token, weight in weighted:
        singular = _normalize(token)
        for topic, keywords in TOPIC_KEYWORDS.items():
            if token in keywords or singular in keywords:
                scores[topic] += weight
    return scores


def classify(title: str, description: str = "") -> Topic:
    """Topic le plus probable, "general" si aucun mot-clé ne correspond"""
    scores = score_topics(title, description or "")
    if not scores:
        return Topic.GENERAL
    # max() garde le premier en cas d'égalité, donc l'ordre de TOPIC_KEYWORDS
    return max(TOPIC_KEYWORDS, key=lambda topic: scores[topic])
