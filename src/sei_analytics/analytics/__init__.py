"""Pure metric engines for wallets, meme coins and NFTs."""
