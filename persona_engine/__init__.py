"""
Persona Engine - Character Card Interchange

Converts chatbot character cards between Tavern, Faraday/Backyard, Agnaistic,
Pygmalion and TextGen WebUI formats, including cards embedded in PNG metadata.
"""

__version__ = "0.1.0"
