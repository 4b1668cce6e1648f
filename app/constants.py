import os

APP_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.environ.get('RETROSHELF_DATA_DIR', os.path.join(APP_DIR, 'data'))
CONFIG_DIR = os.environ.get('RETROSHELF_CONFIG_DIR', os.path.join(APP_DIR, 'config'))
DB_FILE = os.path.join(CONFIG_DIR, 'library.db')
CONFIG_FILE = os.path.join(CONFIG_DIR, 'settings.yaml')

RETROSHELF_DB = 'sqlite:///' + DB_FILE

BUILD_VERSION = '20261017_0900'

DEFAULT_SETTINGS = {
    "launchbox": {
        "root": "",
        "candidate_roots": [],
    },
    "media": {
        "root": "",
    },
    "cache": {
        "redis_url": "redis://localhost:6379/0",
        "media_ttl": 86400,
    },
    "jobs": {
        "use_celery": False,
    },
    "retroachievements": {
        "username": "",
        "api_key": "",
    },
}

# PersistentStore pool
DB_POOL_SIZE = 5
DB_BUSY_TIMEOUT = 10

# MetadataIndexer
METADATA_RECORD_TAG = 'Game'
METADATA_FIELD_TAGS = {
    'DatabaseID': 'id',
    'Name': 'title',
    'Platform': 'platform',
    'ReleaseDate': 'release_date',
    'ReleaseYear': 'release_year',
    'Developer': 'developer',
    'Publisher': 'publisher',
    'Genres': 'genres',
    'MaxPlayers': 'max_players',
    'Overview': 'description',
    'ESRB': 'rating',
    'CommunityRating': 'star_rating',
}
METADATA_BATCH_SIZE = 500
METADATA_PROGRESS_INTERVAL = 500
XML_READ_CHUNK_SIZE = 64 * 1024

# MediaResolver
MEDIA_CACHE_PREFIX = 'metadata'
MEDIA_CACHE_TTL = 86400
MEDIA_SEARCH_DEPTH = 3
MAX_PLATFORM_VARIANTS = 6
PLACEHOLDER_BOX_FRONT_URL = 'https://via.placeholder.com/300x400.png?text={title}+Front+Box'

# Job state shared with Celery workers through the distributed cache
JOB_CACHE_PREFIX = 'jobs'
JOB_CACHE_TTL = 86400

IMAGES_FOLDER = 'Images'
VIDEOS_FOLDER = 'Videos'

# (bundle field, media folder, asset folder, max depth)
MEDIA_ASSET_TYPES = [
    ('box_3d', IMAGES_FOLDER, 'Box - 3D', MEDIA_SEARCH_DEPTH),
    ('box_front', IMAGES_FOLDER, 'Box - Front', MEDIA_SEARCH_DEPTH),
    ('box_back', IMAGES_FOLDER, 'Box - Back', MEDIA_SEARCH_DEPTH),
    ('box_full', IMAGES_FOLDER, 'Box - Full', MEDIA_SEARCH_DEPTH),
    ('box_front_reconstructed', IMAGES_FOLDER, 'Box - Front - Reconstructed', MEDIA_SEARCH_DEPTH),
    ('box_back_reconstructed', IMAGES_FOLDER, 'Box - Back - Reconstructed', MEDIA_SEARCH_DEPTH),
    ('flyer_front', IMAGES_FOLDER, 'Advertisement Flyer - Front', MEDIA_SEARCH_DEPTH),
    ('flyer_back', IMAGES_FOLDER, 'Advertisement Flyer - Back', MEDIA_SEARCH_DEPTH),
    ('arcade_cabinet', IMAGES_FOLDER, 'Arcade - Cabinet', MEDIA_SEARCH_DEPTH),
    ('arcade_marquee', IMAGES_FOLDER, 'Arcade - Marquee', MEDIA_SEARCH_DEPTH),
    ('arcade_board', IMAGES_FOLDER, 'Arcade - Circuit Board', MEDIA_SEARCH_DEPTH),
    ('arcade_control_panel', IMAGES_FOLDER, 'Arcade - Control Panel', MEDIA_SEARCH_DEPTH),
    ('arcade_controls_info', IMAGES_FOLDER, 'Arcade - Controls Information', MEDIA_SEARCH_DEPTH),
    ('banner', IMAGES_FOLDER, 'Banner', MEDIA_SEARCH_DEPTH),
    ('clear_logo', IMAGES_FOLDER, 'Clear Logo', MEDIA_SEARCH_DEPTH),
    ('fanart_background', IMAGES_FOLDER, 'Fanart - Background', MEDIA_SEARCH_DEPTH),
    ('disc', IMAGES_FOLDER, 'Disc', MEDIA_SEARCH_DEPTH),
    ('cart_3d', IMAGES_FOLDER, 'Cart - 3D', MEDIA_SEARCH_DEPTH),
    ('cart_front', IMAGES_FOLDER, 'Cart - Front', MEDIA_SEARCH_DEPTH),
    ('cart_back', IMAGES_FOLDER, 'Cart - Back', MEDIA_SEARCH_DEPTH),
    ('screenshot_gameplay', IMAGES_FOLDER, 'Screenshot - Gameplay', MEDIA_SEARCH_DEPTH),
    ('screenshot_title', IMAGES_FOLDER, 'Screenshot - Game Title', MEDIA_SEARCH_DEPTH),
    ('screenshot_select', IMAGES_FOLDER, 'Screenshot - Game Select', MEDIA_SEARCH_DEPTH),
    ('screenshot_gameover', IMAGES_FOLDER, 'Screenshot - Game Over', MEDIA_SEARCH_DEPTH),
    ('screenshot_scores', IMAGES_FOLDER, 'Screenshot - High Scores', MEDIA_SEARCH_DEPTH),
    ('bigbox_video', VIDEOS_FOLDER, 'Theme', MEDIA_SEARCH_DEPTH),
    ('gameplay_video', VIDEOS_FOLDER, '', 0),
    ('gameplay_video', VIDEOS_FOLDER, 'Recordings', MEDIA_SEARCH_DEPTH),
]

# Image rows written by apply_resolved_metadata
ASSET_IMAGE_TYPES = {
    field: folder for field, media_folder, folder, _ in MEDIA_ASSET_TYPES if media_folder == IMAGES_FOLDER
}

PLATFORM_VENDOR_PREFIXES = [
    'Sony', 'Nintendo', 'Sega', 'Microsoft', 'NEC', 'SNK', 'Atari', 'Bandai',
    'Commodore', 'Mattel', 'Coleco', 'Magnavox', 'Philips', 'Panasonic', 'Apple',
]

ILLEGAL_FILENAME_CHARS = '<>:"/\\|?*\''

# Importer
LAUNCHBOX_PLATFORMS_DIR = os.path.join('Data', 'Platforms')
LAUNCHBOX_METADATA_DIR = 'Metadata'
ROM_EXTENSIONS = ['zip', 'nes', 'smc', 'sfc', 'iso', 'bin', 'cue', 'gba', 'gbc', 'n64']
DISC_EXTENSIONS = ['cue', 'bin', 'chd', 'iso']
DEFAULT_PLATFORM_CATEGORY = 'Consoles'

# Hashing
HASH_CHUNK_SIZE = 1024 * 1024
RA_GAME_ID_URL = 'https://retroachievements.org/API/API_GetGameID.php'
