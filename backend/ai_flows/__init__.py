"""
AI Generation Flows

- descriptionGeneratorFlow: product descriptions for the catalog
- catalogAssistantFlow: menu Q&A for customers
"""
