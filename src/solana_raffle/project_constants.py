"""
Project-wide immutable parameters for the SOL raffle.

These values define the public rules for buying tickets and linking wallets.
Changing them changes what clients must send and MUST be announced.
"""

# Native SOL uses 9 decimals
LAMPORTS_PER_SOL = 10**9

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_DATABASE_URL = "sqlite:///raffle.sqlite3"
DEFAULT_APP_URL = "https://sol-raffle.onrender.com"

# Prize kinds a raffle may carry
PRIZE_TYPES = ("sol", "nft", "token")

RAFFLE_ACTIVE = "active"
RAFFLE_ENDED = "ended"

# Where a ticket purchase or a wallet link came from
DEFAULT_CHANNEL = "web"

# Message the wallet must sign to prove ownership (client signs it verbatim)
LINK_MESSAGE_HEADER = "SOL Raffle Wallet Verification"
LINK_MESSAGE_TEMPLATE = (
    LINK_MESSAGE_HEADER
    + "\n\nDiscord ID: {discord_id}\nWallet: {wallet}\nTimestamp: {timestamp_ms}"
)

# Simple SOL transfers that fit in one transaction
AIRDROP_BATCH_LIMIT = 15

WINNERS_PAGE_SIZE = 20

# Revenue history: number of buckets per period, oldest first
HISTORY_PERIODS = {"daily": 7, "weekly": 4, "monthly": 12}
RECENT_ENTRIES_LIMIT = 10
