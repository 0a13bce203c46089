# scripts/generate_encryption_key.py
import os
import sys

# Add the project root directory to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from technique_calendar.core.crypto import TokenCipher

if __name__ == "__main__":
    # Paste into .env as TOKEN_ENCRYPTION_KEY
    print(TokenCipher.generate_key())
    sys.stdout.flush()
