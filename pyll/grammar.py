#!/usr/bin/env python3

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Optional, Union

logger = logging.getLogger(__name__)

Derivation = tuple['Symbol', ...]

# Grammar Representation
# ######################

@dataclass(frozen=True)
class Symbol: pass

@dataclass(frozen=True)
class NonTerm(Symbol):
    name: str
    def __repr__(self): return self.name

@dataclass(frozen=True)
class PseudoTerm(Symbol): pass

@dataclass(frozen=True)
class Term(PseudoTerm):
    name: str
    def __repr__(self): return f'"{self.name}"'

@dataclass(frozen=True)
class Epsilon(PseudoTerm):
    def __repr__(self): return 'ε'

@dataclass(frozen=True)
class EndMarker(PseudoTerm):
    def __repr__(self): return '$'

class SymbolClass(Enum):
    TERMINAL    = 'terminal'
    NONTERMINAL = 'nonterminal'
    EPSILON     = 'epsilon'
    END_MARKER  = 'end-marker'

@dataclass(frozen=True)
class Rule:
    lhs: NonTerm
    rhs: Derivation

    def __repr__(self):
        res = self.lhs.name + " :="
        for s in self.rhs:
            if isTerm(s):      res += f' "{s.name}"'
            elif isNonTerm(s): res += f' {s.name}'
            else:              res += f' {s!r}'
        if len(self.rhs) == 0: res += ' ε'
        return res

@dataclass(frozen=True)
class Occurrence:
    """A right-hand side occurrence of a nonterminal and what follows it."""
    rule: Rule
    suffix: Derivation

    @property
    def producer(self) -> NonTerm:
        return self.rule.lhs

    @property
    def derivation(self) -> Derivation:
        return self.rule.rhs

# errors
# ######

class GrammarError(ValueError):
    pass

class UndefinedSymbolError(GrammarError):
    def __init__(self, symbol: NonTerm, rule: Optional[Rule] = None):
        self.symbol = symbol
        self.rule   = rule
        where = f" (in rule {rule!r})" if rule is not None else ""
        super().__init__(f"Nonterminal {symbol.name} has no production{where}")

# symbol classification
# #####################

def isTerm(s: Symbol) -> bool:
    return isinstance(s, Term)

def isNonTerm(s: Symbol) -> bool:
    return isinstance(s, NonTerm)

def isEpsilon(s: Symbol) -> bool:
    return isinstance(s, Epsilon)

def isEndMarker(s: Symbol) -> bool:
    return isinstance(s, EndMarker)

def classify(s: Symbol) -> SymbolClass:
    if isNonTerm(s):   return SymbolClass.NONTERMINAL
    if isEpsilon(s):   return SymbolClass.EPSILON
    if isEndMarker(s): return SymbolClass.END_MARKER
    if isTerm(s):      return SymbolClass.TERMINAL
    raise ValueError(f"Cannot classify {s!r}: not a grammar symbol")

@dataclass(frozen=True)
class SymbolConvention:
    """Maps raw string tokens onto grammar symbols.

    The reserved ``epsilon`` and ``end`` tokens are recognised first; any other
    token starting with an upper-case letter is a nonterminal, everything else
    is a terminal.
    """
    epsilon: str = 'ε'
    end: str     = '$'

    def classify(self, token: str) -> SymbolClass:
        if token == self.epsilon:  return SymbolClass.EPSILON
        if token == self.end:      return SymbolClass.END_MARKER
        if token[:1].isupper():    return SymbolClass.NONTERMINAL
        return SymbolClass.TERMINAL

    def symbol(self, token: str) -> Symbol:
        if not token:
            raise ValueError("Grammar symbol token must be non-empty")
        cls = self.classify(token)
        if cls is SymbolClass.EPSILON:     return Epsilon()
        if cls is SymbolClass.END_MARKER:  return EndMarker()
        if cls is SymbolClass.NONTERMINAL: return NonTerm(token)
        return Term(token)

    def token(self, s: Symbol) -> str:
        if isEpsilon(s):   return self.epsilon
        if isEndMarker(s): return self.end
        return s.name

DEFAULT_CONVENTION = SymbolConvention()

# grammar model
# #############

@dataclass(frozen=True)
class Grammar:
    start: NonTerm
    ruleDict: Mapping[NonTerm, tuple[Derivation, ...]]

    def __post_init__(self):
        rules = { n : tuple(tuple(d) for d in ds) for n, ds in self.ruleDict.items() }
        object.__setattr__(self, 'ruleDict', MappingProxyType(rules))
        self._validate()
        object.__setattr__(self, '_firstIndex', self._buildIndex(False))
        object.__setattr__(self, '_everyIndex', self._buildIndex(True))
        logger.debug("grammar with start %s and %d nonterminals", self.start, len(rules))

    def __hash__(self):
        return hash((self.start, tuple(self.ruleDict.items())))

    def __repr__(self):
        res = f"Grammar(\n  start = {self.start},\n"
        for n, rules in self.ruleDict.items():
            for rule in rules:
                res += "  " + repr(Rule(n, rule)) + "\n"
        res += ")"
        return res

    def _validate(self):
        for n in self.ruleDict:
            if not isNonTerm(n):
                raise GrammarError(f"Grammar rule key {n!r} must be a non-terminal")
        if not isNonTerm(self.start):
            raise GrammarError(f"Start symbol {self.start!r} must be a non-terminal")
        if self.start not in self.ruleDict:
            raise UndefinedSymbolError(self.start)
        for n, rules in self.ruleDict.items():
            for rule in rules:
                for s in rule:
                    if not isinstance(s, Symbol):
                        raise GrammarError(f"{s!r} in rule {Rule(n, rule)!r} is not a grammar symbol")
                    if isNonTerm(s) and s not in self.ruleDict:
                        raise UndefinedSymbolError(s, Rule(n, rule))

    def _buildIndex(self, every: bool) -> dict[NonTerm, tuple[Occurrence, ...]]:
        index = { n : [] for n in self.ruleDict }
        for n, rules in self.ruleDict.items():
            for rule in rules:
                seen = set()
                for i, s in enumerate(rule):
                    if not isNonTerm(s): continue
                    if not every and s in seen: continue
                    seen.add(s)
                    index[s].append(Occurrence(Rule(n, rule), rule[i+1:]))
        return { n : tuple(occs) for n, occs in index.items() }

    def keys(self):
        return self.ruleDict.keys()

    def items(self):
        return self.ruleDict.items()

    def rules(self):
        return self.ruleDict.items()

    def __getitem__(self, nonterm):
        if not isinstance(nonterm, NonTerm):
            raise ValueError("Grammar rule lookup must use valid non-terminal")
        try:
            return self.ruleDict[nonterm]
        except KeyError:
            raise UndefinedSymbolError(nonterm) from None

    def __contains__(self, nonterm):
        return nonterm in self.ruleDict

    def derivations(self, nonterm: NonTerm) -> tuple[Derivation, ...]:
        return self[nonterm]

    def producers(self) -> tuple[NonTerm, ...]:
        return tuple(self.ruleDict.keys())

    def terminals(self) -> frozenset[Term]:
        return frozenset(s for rules in self.ruleDict.values() for rule in rules for s in rule if isTerm(s))

    def occurrencesOf(self, nonterm: NonTerm, everyOccurrence: bool = False) -> tuple[Occurrence, ...]:
        """Every right-hand side in which ``nonterm`` appears, with its suffix.

        By default a derivation contributes one entry, split at the first
        occurrence of ``nonterm``. With ``everyOccurrence`` each textual
        occurrence contributes its own entry. An empty result means the
        nonterminal never appears on a right-hand side.
        """
        self.derivations(nonterm)
        index = self._everyIndex if everyOccurrence else self._firstIndex
        return index[nonterm]

    @classmethod
    def fromdict(cls, start: str, rules: Mapping[str, Iterable[Union[str, Iterable[str]]]],
                 convention: SymbolConvention = DEFAULT_CONVENTION) -> 'Grammar':
        """Build a grammar from string tokens.

        A derivation given as a single string is read one character per symbol,
        so ``"aB"`` is ``a B``; any other iterable is read token by token.
        """
        def lhs(token):
            s = convention.symbol(token)
            if not isNonTerm(s):
                raise GrammarError(f"Rule head {token!r} is not a non-terminal")
            return s
        ruleDict = {}
        for n, derivations in rules.items():
            ruleDict[lhs(n)] = tuple(tuple(convention.symbol(t) for t in d) for d in derivations)
        return cls(lhs(start), ruleDict)

    def todict(self, convention: SymbolConvention = DEFAULT_CONVENTION):
        return { n.name : [ [ convention.token(s) for s in rule ] for rule in rules ]
                 for n, rules in self.ruleDict.items() }
