import logging
from pymongo import MongoClient, ASCENDING, DESCENDING, IndexModel
import certifi

from campaignwala import config

logger = logging.getLogger("uvicorn.error")

client = None
db = None

# Collections, bound by init_db()
users_collection = None
phone_otps_collection = None
offers_collection = None
leads_collection = None
wallets_collection = None
withdrawals_collection = None


def create_client(uri=None):
    uri = uri or config.MONGO_URI
    # Atlas clusters need the certifi bundle; local instances run without TLS
    if uri.startswith("mongodb+srv://"):
        return MongoClient(uri, tlsCAFile=certifi.where())
    return MongoClient(uri)


def init_db(mongo_client=None, db_name=None):
    """Bind the module-level collections to a client and make sure indexes exist."""
    global client, db
    global users_collection, phone_otps_collection, offers_collection
    global leads_collection, wallets_collection, withdrawals_collection

    client = mongo_client if mongo_client is not None else create_client()
    db = client[db_name or config.DB_NAME]

    users_collection = db["users"]
    phone_otps_collection = db["phone_otps"]
    offers_collection = db["offers"]
    leads_collection = db["leads"]
    wallets_collection = db["wallets"]
    withdrawals_collection = db["withdrawals"]

    users_collection.create_indexes([
        IndexModel([("phoneNumber", ASCENDING)], unique=True),
        IndexModel([("email", ASCENDING)], sparse=True),
        IndexModel([("kycDetails.kycStatus", ASCENDING)]),
    ])
    phone_otps_collection.create_index([("phoneNumber", ASCENDING)], unique=True)
    offers_collection.create_indexes([
        IndexModel([("offersId", ASCENDING)], unique=True),
        IndexModel([("nameLower", ASCENDING)], unique=True, sparse=True),
        IndexModel([("category", ASCENDING)]),
        IndexModel([("createdAt", DESCENDING)]),
    ])
    leads_collection.create_indexes([
        IndexModel([("leadId", ASCENDING)], unique=True),
        IndexModel([("hrUserId", ASCENDING)]),
        IndexModel([("status", ASCENDING)]),
    ])
    wallets_collection.create_index([("userId", ASCENDING)], unique=True)
    withdrawals_collection.create_indexes([
        IndexModel([("withdrawalId", ASCENDING)], unique=True),
        IndexModel([("userId", ASCENDING)]),
        IndexModel([("status", ASCENDING)]),
        IndexModel([("requestDate", DESCENDING)]),
    ])

    logger.info("Connected to MongoDB database %s", db.name)
    return db
