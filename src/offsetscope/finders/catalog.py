"""Built-in targets: the Lua C API and game-client internals on ARM64."""

from __future__ import annotations

from collections.abc import Iterable

from offsetscope.finders.target import TargetSpec
from offsetscope.finders.validators import HeuristicShape, StructuralValidator

LUA_API = "lua_api"
ROBLOX = "roblox"

# every Lua API entry point spills registers and loads from lua_State early on
LUA_VALIDATOR = StructuralValidator(required=("load",), window=64, require_prologue=True)

_LUA_API: tuple[tuple[str, tuple[str, ...], tuple[str, ...], str], ...] = (
    ("lua_gettop", ("F9 ?? ?? ?? D1 ?? ?? ?? 9B ?? ?? ?? CB",), (),
     "int lua_gettop(lua_State *L)"),
    ("lua_settop", ("F9 ?? ?? ?? B4 ?? ?? ?? 91 ?? ?? ?? F9",), (),
     "void lua_settop(lua_State *L, int index)"),
    ("lua_pushvalue", ("A9 ?? ?? ?? F9 ?? ?? ?? 91 ?? ?? ?? EB",), (),
     "void lua_pushvalue(lua_State *L, int index)"),
    ("lua_type", ("F9 ?? ?? ?? B4 ?? ?? ?? 39 ?? ?? ?? 52",), (),
     "int lua_type(lua_State *L, int index)"),
    ("lua_tonumber", ("F9 ?? ?? ?? BD ?? ?? ?? 1E ?? ?? ?? 1E",), ("lua_tonumberx",),
     "lua_Number lua_tonumber(lua_State *L, int index)"),
    ("lua_toboolean", ("F9 ?? ?? ?? B4 ?? ?? ?? 39 ?? ?? ?? 71",), (),
     "int lua_toboolean(lua_State *L, int index)"),
    ("lua_tostring", ("F9 ?? ?? ?? B4 ?? ?? ?? 39 ?? ?? ?? F0",), ("lua_tolstring",),
     "const char* lua_tostring(lua_State *L, int index)"),
    ("lua_touserdata", ("F9 ?? ?? ?? B4 ?? ?? ?? 39 ?? ?? ?? 71 ?? ?? ?? 54",), (),
     "void* lua_touserdata(lua_State *L, int index)"),
    ("lua_rawget", ("A9 ?? ?? ?? F9 ?? ?? ?? 94 ?? ?? ?? A9",), (),
     "void lua_rawget(lua_State *L, int index)"),
    ("lua_rawgeti", ("A9 ?? ?? ?? F9 ?? ?? ?? 93 ?? ?? ?? 94",), (),
     "void lua_rawgeti(lua_State *L, int index, int n)"),
    ("lua_rawset", ("A9 ?? ?? ?? F9 ?? ?? ?? D1 ?? ?? ?? F9",), (),
     "void lua_rawset(lua_State *L, int index)"),
    ("lua_rawseti", ("A9 ?? ?? ?? F9 ?? ?? ?? 93 ?? ?? ?? D1",), (),
     "void lua_rawseti(lua_State *L, int index, int n)"),
    ("lua_getfield", ("A9 ?? ?? ?? F9 ?? ?? ?? 94 ?? ?? ?? B4",), (),
     "void lua_getfield(lua_State *L, int index, const char *k)"),
    ("lua_createtable", ("A9 ?? ?? ?? 2A ?? ?? ?? 2A ?? ?? ?? 94",), (),
     "void lua_createtable(lua_State *L, int narr, int nrec)"),
    ("lua_newthread", ("A9 ?? ?? ?? F9 ?? ?? ?? 52 ?? ?? ?? 94",), (),
     "lua_State* lua_newthread(lua_State *L)"),
    ("lua_resume", ("A9 ?? ?? ?? F9 ?? ?? ?? B4 ?? ?? ?? F9 ?? ?? ?? 94",), (),
     "int lua_resume(lua_State *L, int nargs)"),
    ("lua_pcall", ("A9 ?? ?? ?? F9 ?? ?? ?? D1 ?? ?? ?? 94 ?? ?? ?? B5",), ("lua_pcallk",),
     "int lua_pcall(lua_State *L, int nargs, int nresults, int errfunc)"),
)


def _lua_api_targets() -> list[TargetSpec]:
    targets = [
        TargetSpec(
            name=name,
            aliases=aliases,
            patterns=patterns,
            validator=LUA_VALIDATOR,
            category=LUA_API,
            signature=signature,
        )
        for name, patterns, aliases, signature in _LUA_API
    ]
    targets.append(
        TargetSpec(
            name="lua_call",
            aliases=("lua_callk",),
            patterns=(
                "A9 ?? ?? ?? F9 ?? ?? ?? D1 ?? ?? ?? 94 ?? ?? ?? A9",
                "F9 ?? ?? ?? 39 ?? ?? ?? F9 ?? ?? ?? B4 ?? ?? ?? 94",
                "A9 ?? ?? ?? F9 ?? ?? ?? A9 ?? ?? ?? 94 ?? ?? ?? B4",
                "D1 ?? ?? ?? A9 ?? ?? ?? F9 ?? ?? ?? 91",
            ),
            xref_strings=("attempt to call", "stack overflow", "C stack overflow"),
            validator=StructuralValidator(
                required=("load",), any_of=("compare", "call"), window=128, require_prologue=True
            ),
            category=LUA_API,
            signature="void lua_call(lua_State *L, int nargs, int nresults)",
        )
    )
    return targets


def _roblox_targets() -> list[TargetSpec]:
    return [
        TargetSpec(
            name="LuauLoad",
            aliases=("luau_load",),
            patterns=(
                "FD 7B ?? A9 FD ?? ?? 91 F3 ?? ?? A9 F5 ?? ?? A9 F7 ?? ?? A9 F9 ?? ?? A9 FB ?? ?? A9",
                "A9 ?? ?? ?? A9 ?? ?? ?? A9 ?? ?? ?? 90 ?? ?? ?? 91 ?? ?? ?? 94",
                "F4 4F ?? A9 FD 7B ?? A9 FD ?? ?? 91 F3 ?? ?? F8",
            ),
            xref_strings=("compile error", "bytecode version", "main chunk"),
            validator=StructuralValidator(required=("load", "call"), window=128, require_prologue=True),
            heuristic=HeuristicShape(min_loads=2, min_compares=0, window=128),
            category=ROBLOX,
            signature="int LuauLoad(lua_State* L, const char* chunkname, const char* source, size_t size, int env)",
        ),
        TargetSpec(
            name="NewThread",
            patterns=(
                "FD 7B ?? A9 FD ?? ?? 91 F3 ?? ?? A9 ?? ?? ?? ?? 94 ?? ?? ?? F9",
                "A9 ?? ?? ?? F9 ?? ?? ?? 52 ?? ?? ?? 94 ?? ?? ?? B4",
            ),
            validator=StructuralValidator(required=("call", "store"), window=64, require_prologue=True),
            heuristic=None,
            category=ROBLOX,
            signature="lua_State* NewThread(lua_State* L)",
        ),
        TargetSpec(
            name="PushInstance",
            patterns=(
                "FD 7B ?? A9 FD ?? ?? 91 F3 ?? ?? A9 F5 ?? ?? A9 ?? ?? ?? F9",
                "A9 ?? ?? ?? A9 ?? ?? ?? F9 ?? ?? ?? B4 ?? ?? ?? 94",
            ),
            xref_strings=("weak references", "userdata"),
            validator=StructuralValidator(required=("call", "store"), window=128, require_prologue=True),
            category=ROBLOX,
            signature="void PushInstance(lua_State* L, Instance* instance)",
        ),
        TargetSpec(
            name="GetTypename",
            patterns=(
                "FD 7B ?? A9 FD ?? ?? 91 ?? ?? ?? 39 71 ?? ?? ?? 54",
                "39 ?? ?? ?? 71 ?? ?? ?? 54 ?? ?? ?? 90 ?? ?? ?? 91",
            ),
            validator=StructuralValidator(
                required=("byte_access",), any_of=("compare_imm", "adrp"), window=96, require_prologue=True
            ),
            heuristic=HeuristicShape(
                min_loads=1, min_compares=1, window=64, load_feature="byte_access"
            ),
            category=ROBLOX,
            signature="const char* GetTypename(lua_State* L, int index)",
        ),
        TargetSpec(
            name="IdentityPropagator",
            patterns=(
                "FD 7B ?? A9 FD ?? ?? 91 F3 ?? ?? A9 ?? ?? ?? B9 71",
                "B9 ?? ?? ?? 71 ?? ?? ?? 54 ?? ?? ?? B9 ?? ?? ?? 91",
                "F9 ?? ?? ?? B9 ?? ?? ?? 52 ?? ?? ?? 72 ?? ?? ?? B9",
            ),
            xref_strings=("identity", "security", "permission"),
            validator=StructuralValidator(
                required=("load",), any_of=("store_word", "compare_imm"), window=128, require_prologue=True
            ),
            category=ROBLOX,
            signature="void IdentityPropagator(lua_State* L, int identity)",
        ),
        TargetSpec(
            name="PushCClosure",
            aliases=("lua_pushcclosurek",),
            patterns=(
                "FD 7B ?? A9 FD ?? ?? 91 F3 ?? ?? A9 F5 ?? ?? A9 ?? ?? ?? 52",
                "52 ?? ?? ?? 72 ?? ?? ?? 94 ?? ?? ?? F9 ?? ?? ?? B9",
            ),
            xref_strings=("cclosure", "upvalue", "debugname"),
            validator=StructuralValidator(required=("call", "store"), window=128, require_prologue=True),
            category=ROBLOX,
            signature=(
                "void PushCClosure(lua_State* L, lua_CFunction fn, const char* debugname, "
                "int nup, lua_Continuation cont)"
            ),
        ),
        TargetSpec(
            name="TaskScheduler",
            patterns=(
                "FD 7B ?? A9 FD ?? ?? 91 ?? ?? ?? 90 ?? ?? ?? F9 ?? ?? ?? B4",
                "90 ?? ?? ?? F9 ?? ?? ?? B4 ?? ?? ?? 52 ?? ?? ?? B9",
            ),
            xref_strings=("TaskScheduler", "JobPriority", "Waiting", "Running"),
            validator=StructuralValidator(required=("load", "return"), window=96, require_prologue=True),
            heuristic=None,
            category=ROBLOX,
            signature="TaskScheduler* TaskScheduler::singleton()",
        ),
    ]


def builtin_targets() -> list[TargetSpec]:
    """The full catalog, Lua API first."""
    return _lua_api_targets() + _roblox_targets()


def select_targets(
    targets: Iterable[TargetSpec],
    names: Iterable[str] | None = None,
    disabled: Iterable[str] = (),
) -> list[TargetSpec]:
    """Filter ``targets`` to ``names`` (all when None), minus ``disabled``.

    Raises ``KeyError`` for a requested name that is not in ``targets``.
    """
    by_name = {t.name: t for t in targets}
    skip = set(disabled)
    if names is None:
        return [t for t in by_name.values() if t.name not in skip]
    selected = []
    for name in names:
        if name not in by_name:
            raise KeyError(name)
        if name not in skip:
            selected.append(by_name[name])
    return selected
