"""
Repositories package

Each repository encapsulates database operations for a model:
- platforms_repository.py
- games_repository.py
- images_repository.py
- metadata_repository.py

Usage:
    from repositories.games_repository import GamesRepository
    game = GamesRepository.get_by_id("nes-metroid")
"""
