"""Texts shared by the test modules."""

FOX = "The quick brown fox jumps over the lazy dog."

ESSAY = (
    "Photosynthesis converts light energy into chemical energy stored in glucose. "
    "Plants absorb carbon dioxide through small pores called stomata on their leaves. "
    "Chlorophyll in the chloroplasts captures sunlight and drives the light reactions. "
    "The Calvin cycle then fixes carbon into sugars that feed the whole plant. "
    "Without this process most life on Earth would not have enough oxygen to breathe."
)

OTHER_ESSAY = (
    "The French Revolution began in 1789 amid a severe fiscal crisis. "
    "Commoners formed the National Assembly and demanded a written constitution. "
    "The storming of the Bastille became a symbol of popular resistance. "
    "Radical factions later seized power during the Reign of Terror. "
    "Napoleon eventually ended the revolutionary period by crowning himself emperor."
)


def numbered_text(n: int, prefix: str = "word") -> str:
    """n distinct words, ten per sentence."""
    words = [f"{prefix}{i}" for i in range(n)]
    sentences = [" ".join(words[i:i + 10]) + "." for i in range(0, n, 10)]
    return " ".join(sentences)
