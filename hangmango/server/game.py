import logging, random
from typing import Iterable, List, Optional

from hangmango.common.config import ENC, MAX_GUESS_LENGTH

logger = logging.getLogger(__name__)

DEFAULT_POOL = ("apple", "hello", "laminate", "sorcerer", "willow")
GUESS_TOO_LONG = "Guesses are limited to 100 characters in length."


class HangmanState:
    '''
    One hangman game. The protocol never looks inside: it calls new_game(),
    feeds guesses to process() and reads hint, answer, in_progress and score.

    Score = 10 * len(answer) - 2 * letters guessed - wrong words guessed.
    '''
    def __init__(self, pool: Iterable[str] = DEFAULT_POOL, rng: Optional[random.Random] = None):
        self.pool = tuple(pool)
        self.rng = rng or random.Random()
        self.answer = ""
        self.hint = ""
        self.guesses: List[str] = []
        self.wordguesses: List[str] = []
        self.in_progress = False
        self.score = 0

    def new_game(self) -> None:
        if not self.pool:
            raise ValueError("word pool is empty")
        self.answer = self.rng.choice(self.pool).lower()
        self.hint = "_" * len(self.answer)
        self.guesses, self.wordguesses = [], []
        self.score = 0
        self.in_progress = True

    def process(self, message: str) -> str:
        '''
        Play one turn and return the text to send back: the updated hint,
        the final score once the word is complete, or an error for oversized guesses.
        '''
        message = message.lower()
        if len(message.encode(ENC)) > MAX_GUESS_LENGTH:
            return GUESS_TOO_LONG
        if len(message) == 1:
            self.guesses.append(message)
            self.hint = "".join(c if c == message else h for c, h in zip(self.answer, self.hint))
            if "_" not in self.hint:
                return self._finish()
        elif len(message) > 1:
            if message == self.answer:
                return self._finish()
            self.wordguesses.append(message)
        return self.hint

    def _finish(self) -> str:
        self.score = 10 * len(self.answer) - 2 * len(self.guesses) - len(self.wordguesses)
        self.in_progress = False
        return str(self.score)
