"""Minimal ABI fragments for the USPD contracts the liquidator touches."""

PRICE_QUERY_COMPONENTS = [
    {"name": "price", "type": "uint256"},
    {"name": "decimals", "type": "uint8"},
    {"name": "dataTimestamp", "type": "uint256"},
    {"name": "assetPair", "type": "bytes32"},
    {"name": "signature", "type": "bytes"},
]

STABILIZER_NFT_ABI = [
    {
        "name": "totalSupply",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "ownerOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "positionEscrows",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "liquidatePosition",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "liquidatorTokenId", "type": "uint256"},
            {"name": "positionTokenId", "type": "uint256"},
            {
                "name": "priceQuery",
                "type": "tuple",
                "components": PRICE_QUERY_COMPONENTS,
            },
        ],
        "outputs": [],
    },
    {
        "name": "StabilizerPositionCreated",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "tokenId", "type": "uint256", "indexed": True},
            {"name": "owner", "type": "address", "indexed": True},
        ],
    },
]

POSITION_ESCROW_ABI = [
    {
        "name": "getCurrentStEthBalance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "backedPoolShares",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "getCollateralizationRatio",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {
                "name": "priceQuery",
                "type": "tuple",
                "components": PRICE_QUERY_COMPONENTS,
            }
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

RATE_CONTRACT_ABI = [
    {
        "name": "getYieldFactor",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

ERC20_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]
