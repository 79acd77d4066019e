"""Tests for exploration/variables.py - variable tracking and deferred templates."""

import logging
import time

import pytest

from remote_explorer.exploration.variables import (
    VariableResolver,
    normalize_generated,
    replace_variable,
    variable_names,
)


@pytest.fixture
def resolver():
    return VariableResolver({}, [], source_excludes=("/proc/cmdline", "mapping.ini"))


class TestHelpers:
    def test_variable_names_both_forms(self):
        assert variable_names("${A}/$B/${A}/x") == ["A", "B"]

    def test_replace_variable_both_forms(self):
        assert replace_variable("${A}/$A/x", "A", "foo") == "foo/foo/x"

    def test_replace_does_not_touch_longer_names(self):
        assert replace_variable("$AB/$A", "A", "x") == "$AB/x"

    def test_normalize_generated(self):
        assert normalize_generated("foo//bar/x") == "/foo/bar/x"
        assert normalize_generated("/basic//3rd_ini/x.ini") == "/basic/3rd_ini/x.ini"


class TestExtractVariables:
    def test_explicit_definitions(self, resolver):
        text = 'export MODEL="tv2024"\nREGION=eu\n'
        resolver.extract_variables(text, "/etc/profile")
        assert [v.value for v in resolver.variables["MODEL"]] == ["tv2024"]
        assert resolver.variables["REGION"][0].confidence == "explicit"
        assert resolver.variables["REGION"][0].discovered_in == "/etc/profile"

    def test_command_substitution_skipped(self, resolver):
        resolver.extract_variables("KVER=$(uname -r)\nARCH=`uname -m`\n", "/etc/profile")
        assert "KVER" not in resolver.variables
        assert "ARCH" not in resolver.variables

    def test_conditional_values(self, resolver):
        resolver.extract_variables('if [ "$BOARD" == "k7" ]; then\n', "/etc/rc.sh")
        value = resolver.variables["BOARD"][0]
        assert value.value == "k7"
        assert value.confidence == "conditional"

    def test_executable_values_skipped(self, resolver):
        resolver.extract_variables("SHELL=/bin/sh\nEDITOR=/usr/bin/vi\n", "/etc/profile")
        assert resolver.variables == {}

    @pytest.mark.parametrize("source", ["/proc/cmdline", "/basic/cfg/mapping.ini"])
    def test_excluded_sources(self, resolver, source):
        assert resolver.extract_variables("A=1\n", source) == []
        assert resolver.variables == {}

    def test_duplicate_value_ignored(self, resolver):
        resolver.add_variable("A", "foo", "/a")
        resolver.add_variable("A", "foo", "/b")
        resolver.add_variable("A", "bar", "/b")
        assert [v.value for v in resolver.variables["A"]] == ["foo", "bar"]


class TestProcessPath:
    def test_literal(self, resolver):
        result = resolver.process_path("/etc/app.conf", "/etc/profile")
        assert result.kind == "literal"
        assert result.paths == ["/etc/app.conf"]

    def test_generated_with_every_value(self, resolver):
        resolver.add_variable("BASE", "/opt/a", "/etc/profile")
        resolver.add_variable("BASE", "/opt/b", "/etc/profile")
        result = resolver.process_path("${BASE}/conf/app.ini", "/etc/profile")
        assert result.kind == "generated"
        assert result.paths == ["/opt/a/conf/app.ini", "/opt/b/conf/app.ini"]

    def test_invalid_expansion(self, resolver):
        resolver.add_variable("DEV", "/dev", "/etc/profile")
        result = resolver.process_path("${DEV}/sda1", "/etc/profile")
        assert result.kind == "invalid"
        assert resolver.deferred == []

    def test_deferred_keeps_only_missing_names(self, resolver, profile_content):
        resolver.extract_variables(profile_content, "/etc/profile")
        template = "${LINUX_BASIC_PATH}/3rd_ini/${INI_3RD}/global_env_setup.ini"
        result = resolver.process_path(template, "/etc/profile")
        assert result.kind == "deferred"
        assert len(resolver.deferred) == 1
        assert resolver.deferred[0].variables == {"INI_3RD"}
        assert resolver.deferred[0].discovered_in == "/etc/profile"

    def test_add_deferred_is_idempotent(self, resolver):
        first = resolver.add_deferred("${X}/a/b.ini", "/etc/a")
        second = resolver.add_deferred("${X}/a/b.ini", "/etc/b")
        assert first is second
        assert len(resolver.deferred) == 1
        assert resolver.add_deferred("${Y}/a/b.ini", "/etc/a").priority == 1


class TestDeferredResolution:
    def test_converges_when_last_variable_arrives(self, resolver):
        template = "${A}/${B}/x"
        assert resolver.process_path(template, "/etc/profile").kind == "deferred"

        assert resolver.add_variable("A", "foo", "/etc/a.sh") == []
        assert len(resolver.deferred) == 1
        assert resolver.deferred[0].variables == {"B"}

        unlocked = resolver.add_variable("B", "bar", "/etc/b.sh")
        assert [g.path for g in unlocked] == ["/foo/bar/x"]
        assert unlocked[0].template == template
        assert unlocked[0].discovered_in == "/etc/profile"
        assert resolver.deferred == []
        assert resolver.expand_template(template) == ["/foo/bar/x"]

    def test_end_to_end_profile(self, resolver, profile_content):
        resolver.extract_variables(profile_content, "/etc/profile")
        resolver.process_path(
            "${LINUX_BASIC_PATH}/3rd_ini/${INI_3RD}/global_env_setup.ini", "/etc/profile"
        )
        unlocked = resolver.extract_variables("INI_3RD=common\n", "/etc/model.conf")
        assert [(g.path, g.discovered_in) for g in unlocked] == [
            ("/basic/3rd_ini/common/global_env_setup.ini", "/etc/profile")
        ]

    def test_resolved_to_nothing_is_dropped(self, resolver):
        resolver.process_path("${DEV}/null", "/etc/profile")
        assert resolver.add_variable("DEV", "/dev", "/etc/a.sh") == []
        assert resolver.deferred == []


class TestExpansion:
    def test_depth_ceiling(self):
        resolver = VariableResolver({}, [], max_depth=3)
        for name in ("A", "B", "C"):
            resolver.add_variable(name, name.lower(), "/etc/profile")
        assert resolver.expand_template("${A}/${B}/x") == ["/a/b/x"]
        assert resolver.expand_template("${A}/${B}/${C}/x") == []

    def test_self_reference_terminates(self, resolver):
        resolver.add_variable("A", "$A/x", "/etc/profile")
        assert resolver.expand_template("$A/y") == []

    def test_self_referencing_values_do_not_fan_out(self, resolver, caplog):
        for i in range(6):
            resolver.add_variable("LDP", f"$LDP:/x{i}", "/etc/profile")
        resolver.add_variable("LDP", "/usr/lib", "/etc/profile")

        started = time.perf_counter()
        with caplog.at_level(logging.WARNING, logger="remote_explorer"):
            paths = resolver.expand_template("${LDP}/y.conf")
        assert time.perf_counter() - started < 1.0
        assert paths == ["/usr/lib/y.conf"]
        assert [r for r in caplog.records if r.levelno >= logging.WARNING] == []

    def test_mutual_references_terminate(self, resolver):
        resolver.add_variable("A", "$B/a", "/etc/profile")
        resolver.add_variable("B", "$A/b", "/etc/profile")
        resolver.add_variable("B", "/base", "/etc/profile")
        assert resolver.expand_template("${A}/x") == ["/base/a/x"]

    def test_depth_warning_once_per_template(self, caplog):
        resolver = VariableResolver({}, [], max_depth=2)
        for value in ("a1", "a2", "a3"):
            resolver.add_variable("A", value, "/etc/profile")
            resolver.add_variable("B", value.replace("a", "b"), "/etc/profile")
        with caplog.at_level(logging.WARNING, logger="remote_explorer"):
            assert resolver.expand_template("${A}/${B}/x") == []
        warnings = [r for r in caplog.records if "Max expansion depth" in r.getMessage()]
        assert len(warnings) == 1

    def test_unknown_variable(self, resolver):
        assert resolver.expand_template("${NOPE}/x") == []


def test_stats(resolver):
    resolver.add_variable("A", "1", "/etc/a")
    resolver.add_variable("A", "2", "/etc/a")
    resolver.add_variable("B", "k7", "/etc/b", "conditional")
    resolver.add_deferred("${C}/x.ini", "/etc/a")
    stats = resolver.stats()
    assert stats["total_variables"] == 3
    assert stats["total_deferred"] == 1
    assert stats["by_confidence"] == {"explicit": 2, "conditional": 1}


class TestNestedReferences:
    def test_value_with_unknown_reference_is_deferred(self, resolver):
        resolver.add_variable("ROOT", "${BASE}/app", "/etc/profile")
        result = resolver.process_path("${ROOT}/conf/x.ini", "/etc/init.sh")
        assert result.kind == "deferred"
        assert resolver.deferred[0].variables == {"BASE"}

        unlocked = resolver.add_variable("BASE", "/opt", "/etc/base.sh")
        assert [(g.path, g.discovered_in) for g in unlocked] == [("/opt/app/conf/x.ini", "/etc/init.sh")]
        assert resolver.deferred == []

    def test_template_first_then_nested_value(self, resolver):
        assert resolver.process_path("${ROOT}/conf/x.ini", "/etc/init.sh").kind == "deferred"

        assert resolver.add_variable("ROOT", "${BASE}/app", "/etc/profile") == []
        assert len(resolver.deferred) == 1
        assert resolver.deferred[0].variables == {"BASE"}

        unlocked = resolver.add_variable("BASE", "/opt", "/etc/base.sh")
        assert [g.path for g in unlocked] == ["/opt/app/conf/x.ini"]
        assert resolver.deferred == []

    def test_complete_expansions_generated_while_waiting(self, resolver):
        resolver.add_variable("ROOT", "/srv", "/etc/profile")
        resolver.add_variable("ROOT", "${BASE}/app", "/etc/profile")
        result = resolver.process_path("${ROOT}/conf/x.ini", "/etc/init.sh")
        assert result.kind == "generated"
        assert result.paths == ["/srv/conf/x.ini"]
        assert resolver.deferred[0].variables == {"BASE"}

        unlocked = resolver.add_variable("BASE", "/opt", "/etc/base.sh")
        assert [g.path for g in unlocked] == ["/srv/conf/x.ini", "/opt/app/conf/x.ini"]
