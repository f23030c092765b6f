# PATH: ai/__init__.py
"""
AI collaborator for FLARB.

- gemini.py: generateContent REST client (httpx)
- scorer.py: opportunity scoring prompts, post-mortems, advice, sentiment
"""
