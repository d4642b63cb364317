from .grammar import (Symbol, NonTerm, PseudoTerm, Term, Epsilon, EndMarker, SymbolClass, SymbolConvention,
                      DEFAULT_CONVENTION, Rule, Occurrence, Grammar, GrammarError, UndefinedSymbolError,
                      classify, isTerm, isNonTerm, isEpsilon, isEndMarker)
from .sets import SetBuilder, FirstFollowTable, buildTable
