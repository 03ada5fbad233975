"""
Domain Services

- ticket_templates: randomized ticket title/description generation
"""
