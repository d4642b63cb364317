#!/usr/bin/env python3

import logging
import sys
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .grammar import (Symbol, NonTerm, Epsilon, EndMarker, Grammar, SymbolConvention, DEFAULT_CONVENTION,
                      isNonTerm, isEpsilon)

logger = logging.getLogger(__name__)

EPSILON = Epsilon()
END     = EndMarker()

# result marker for sets that do not rest on any unfinished computation
SETTLED = sys.maxsize

# Memoization
# ###########

class _Memo:
    """Per-pass cache for one kind of set, with a re-entrancy guard.

    Nonterminals are numbered as they are first entered. Re-entering one whose
    set is still open yields the partial set gathered so far and its number.
    A nonterminal that reached an open set with a lower number stays open on
    the group stack. When the lowest numbered member of such a group finishes,
    the group is recomputed until no set grows and is then cached as a whole,
    so every group is solved once and cached sets do not depend on the order
    in which nonterminals were entered.
    """

    def __init__(self, kind: str):
        self.kind  = kind
        self.done  = {}
        self.open  = {}
        self.group = []
        self.count = 0

    def run(self, nonterm: NonTerm, compute: Callable[[NonTerm, set], int]) -> tuple[frozenset, int]:
        if nonterm in self.done:
            return self.done[nonterm], SETTLED
        if nonterm in self.open:
            index, acc = self.open[nonterm]
            logger.debug("%s(%s) re-entered, using partial %s", self.kind, nonterm, acc)
            return frozenset(acc), index

        index, acc = self.count, set()
        self.count += 1
        self.open[nonterm] = (index, acc)
        mark = len(self.group)
        self.group.append(nonterm)

        low = compute(nonterm, acc)
        if low < index:
            return frozenset(acc), low
        if low != SETTLED or len(self.group) > mark + 1:
            self._settle(mark, compute)

        members = self.group[mark:]
        del self.group[mark:]
        for m in members:
            self.done[m] = frozenset(self.open.pop(m)[1])
            logger.debug("%s(%s) = %s", self.kind, m, self.done[m])
        return self.done[nonterm], SETTLED

    def _settle(self, mark: int, compute: Callable[[NonTerm, set], int]):
        logger.debug("%s settling group of %d", self.kind, len(self.group) - mark)
        changed = True
        while changed:
            size = len(self.group)
            changed = False
            for m in self.group[mark:size]:
                acc = self.open[m][1]
                fresh = set()
                compute(m, fresh)
                if not fresh <= acc:
                    acc |= fresh
                    changed = True
            # nonterminals first entered while settling joined the group
            if len(self.group) > size:
                changed = True

# FIRST / FOLLOW computation
# ##########################

class SetBuilder:
    grammar: Grammar
    everyOccurrence: bool

    def __init__(self, grammar: Grammar, everyOccurrence: bool = False):
        if not isinstance(grammar, Grammar):
            raise TypeError(f"Expected a Grammar, got {type(grammar).__name__}")
        self.grammar         = grammar
        self.everyOccurrence = everyOccurrence
        self._firstMemo      = _Memo("FIRST")
        self._followMemo     = _Memo("FOLLOW")

    def firstOf(self, nonterm: NonTerm) -> frozenset[Symbol]:
        return self._firstMemo.run(nonterm, self._computeFirst)[0]

    def firstOfSequence(self, seq: Iterable[Symbol]) -> frozenset[Symbol]:
        return frozenset(self._firstOfSequence(seq)[0])

    def followOf(self, nonterm: NonTerm) -> frozenset[Symbol]:
        return self._followMemo.run(nonterm, self._computeFollow)[0]

    def _computeFirst(self, nonterm: NonTerm, acc: set) -> int:
        low = SETTLED
        for rule in self.grammar.derivations(nonterm):
            first, depth = self._firstOfSequence(rule)
            acc.update(first)
            low = min(low, depth)
        return low

    def _firstOfSequence(self, seq: Iterable[Symbol]) -> tuple[set, int]:
        firstSeq, low = set(), SETTLED
        for sym in seq:
            if isNonTerm(sym):
                firstSym, depth = self._firstMemo.run(sym, self._computeFirst)
                low = min(low, depth)
                firstSeq.update(firstSym - { EPSILON })
                if EPSILON not in firstSym:
                    break
            elif isEpsilon(sym):
                firstSeq.add(EPSILON)
                break
            else:
                firstSeq.add(sym)
                break
        else:
            # every symbol can vanish, including the empty derivation
            firstSeq.add(EPSILON)
        return firstSeq, low

    def _computeFollow(self, nonterm: NonTerm, acc: set) -> int:
        low = SETTLED
        if nonterm == self.grammar.start:
            acc.add(END)

        for occ in self.grammar.occurrencesOf(nonterm, self.everyOccurrence):
            if len(occ.suffix) > 0:
                firstSuffix = self.firstOfSequence(occ.suffix)
                acc.update(firstSuffix - { EPSILON })
                if EPSILON not in firstSuffix:
                    continue
            elif occ.producer == nonterm:
                continue
            followProducer, depth = self._followMemo.run(occ.producer, self._computeFollow)
            acc.update(followProducer)
            low = min(low, depth)

        acc.discard(EPSILON)
        return low

# Table Construction
# ##################

@dataclass(frozen=True)
class FirstFollowTable:
    first: Mapping[NonTerm, frozenset[Symbol]]
    follow: Mapping[NonTerm, frozenset[Symbol]]

    def todict(self, convention: SymbolConvention = DEFAULT_CONVENTION):
        token = convention.token
        return { "first":  { n.name : { token(s) for s in syms } for n, syms in self.first.items()  },
                 "follow": { n.name : { token(s) for s in syms } for n, syms in self.follow.items() }
               }

def buildTable(grammar: Grammar, everyOccurrence: bool = False) -> FirstFollowTable:
    """Compute FIRST and FOLLOW for every nonterminal of ``grammar``.

    Each call runs with fresh caches; errors propagate and no partial table is
    returned.
    """
    builder = SetBuilder(grammar, everyOccurrence)
    logger.debug("building FIRST/FOLLOW table for %d nonterminals", len(grammar.producers()))

    first, follow = {}, {}
    for n in grammar.producers():
        first[n]  = builder.firstOf(n)
        follow[n] = builder.followOf(n)

    logger.debug("FIRST/FOLLOW table complete")
    return FirstFollowTable(MappingProxyType(first), MappingProxyType(follow))
