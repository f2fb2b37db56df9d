import random
from typing import Dict, Any, List

CRISIS_LINES = {
    "nationalSuicidePrevention": {
        "name": "National Suicide Prevention Lifeline",
        "phone": "988",
        "website": "https://988lifeline.org/",
    },
    "crisisTextLine": {
        "name": "Crisis Text Line",
        "text": "Text HOME to 741741",
        "website": "https://www.crisistextline.org/",
    },
}

GENERAL_RESOURCES = [
    {
        "name": "National Alliance on Mental Illness (NAMI)",
        "website": "https://www.nami.org/",
        "description": "Education, support, and advocacy for mental health",
    },
    {
        "name": "Mental Health America",
        "website": "https://www.mhanational.org/",
        "description": "Resources and tools for mental wellness",
    },
]


def crisis_resources() -> Dict[str, Any]:
    return {"crisis": CRISIS_LINES, "general": GENERAL_RESOURCES}


SAD_REPLIES = [
    "Why don't scientists trust atoms? Because they make up everything! 😄 But seriously, I know things might feel tough right now, but remember - even the darkest nights end with a sunrise. You've got this! 🌅",
    "What do you call a fake noodle? An impasta! 🍝 Hehe! But you know what? Every cloud has a silver lining, and I believe brighter days are ahead for you! Keep your chin up! ✨",
    "Why did the scarecrow win an award? He was outstanding in his field! 🌾 Okay, corny joke aside - I want you to know that tough times don't last, but tough people like you do! You're stronger than you think! 💪",
]

CHEER_UP_REPLIES = [
    "Did you know that laughing for just 15 minutes can burn up to 40 calories? So let's laugh together! 😂 Here's a joke: Why don't eggs tell jokes? They'd crack each other up! 🥚 But more importantly, you're amazing just for being you! 🌟",
    "Here's something to smile about: A group of bunnies is called a 'fluffle' - how adorable is that? 🐰💕 You know what else is adorable? You taking the time to care about your happiness! ✨",
    "Why did the math book look so sad? Because it had too many problems! 📚😄 But hey, you're not a math problem - you're a solution! Let's focus on what makes you smile! 😊",
]

ANXIOUS_REPLY = (
    "Why did the coffee file a police report? It got mugged! ☕😄 I know anxiety can feel overwhelming, but remember - "
    "you've handled 100% of your worst days so far! Take a deep breath with me... in... and out... You've got this! 🌈"
)

TIRED_REPLY = (
    "Why did the bicycle fall over? Because it was two-tired! 🚲😄 I totally get feeling worn out - life can be exhausting! "
    "But remember, even superheroes need rest. It's okay to take breaks. Tomorrow is a fresh start! 🌅"
)

CRISIS_REPLY = (
    "If you're in immediate danger, please call 988 (Suicide & Crisis Lifeline) or 911. You can also text HOME to 741741 "
    "for 24/7 crisis support. Your life matters, and there are people ready to help you right now. 💙"
)

DEFAULT_REPLIES = [
    "Hey there! 🐰 I'm so glad you're here! How can I help brighten your day today? I'm all ears (and floppy ones at that)! 😊",
    "Hello! It's wonderful to chat with you! What's on your mind? I'm here to listen and hopefully bring a smile to your face! 🌟",
    "Hi there! Thanks for reaching out! I'm Rabbit, and I'm here to help make your day a little brighter. What would you like to talk about? 😄",
]


def _mentions(text: str, words: List[str]) -> bool:
    return any(w in text for w in words)


def fallback_response(message: str) -> str:
    """Canned reply used when the LLM is not configured or the call failed."""
    t = (message or "").lower()
    if _mentions(t, ["sad", "depressed", "down", "unhappy"]):
        return random.choice(SAD_REPLIES)
    if _mentions(t, ["make me happy", "cheer me up", "make me feel better"]):
        return random.choice(CHEER_UP_REPLIES)
    if _mentions(t, ["anxious", "anxiety", "worried", "stressed"]):
        return ANXIOUS_REPLY
    if _mentions(t, ["tired", "exhausted", "worn out"]):
        return TIRED_REPLY
    if _mentions(t, ["help", "crisis", "suicide"]):
        return CRISIS_REPLY
    return random.choice(DEFAULT_REPLIES)
