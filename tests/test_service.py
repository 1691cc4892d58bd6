from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import types
import unittest
from pathlib import Path
from unittest.mock import patch

from seqsearch import service as service_module
from seqsearch import settings as settings_module
from seqsearch.errors import SearchArgumentError, SearchInternalError
from seqsearch.hyperlinks import DEFAULT_OVERRIDES, HyperlinkOverrides
from seqsearch.service import SearchService, build_service
from seqsearch.settings import CorpusEntry, Settings

ROOT = Path(__file__).resolve().parents[1]
TWO_QUERIES = ROOT / "tests" / "fixtures" / "blastp_two_queries.html"
PROTEIN = ">SI2.2.0_06267\nMNTLWLSLWDYPGKLPLNFMVFDTKDDLQAAYWRDPYSIPLAVIFEDPQPISQRLIYEIR\n"

# Stand-in for a BLAST+ binary: records its arguments and query, then behaves
# according to the FAKE_BLAST_* environment variables.
FAKE_BLAST = """\
import json, os, pathlib, sys
args = sys.argv[1:]
query = pathlib.Path(args[args.index("-query") + 1])
pathlib.Path(os.environ["FAKE_BLAST_RECORD"]).write_text(
    json.dumps({"args": args, "query": query.read_text(), "query_path": str(query)})
)
sys.stderr.write(os.environ.get("FAKE_BLAST_STDERR", ""))
report = os.environ.get("FAKE_BLAST_REPORT")
if report:
    sys.stdout.write(pathlib.Path(report).read_text())
sys.exit(int(os.environ.get("FAKE_BLAST_STATUS", "0")))
"""


class SearchServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)
        work = Path(self.tempdir.name)

        self.binary = work / "blastp"
        self.binary.write_text(f"#!{sys.executable}\n{FAKE_BLAST}", encoding="utf-8")
        self.binary.chmod(0o755)
        self.record = work / "record.json"

        self.proteins = CorpusEntry.from_storage_name("/db/SI2.2.3.fa", "Solenopsis proteins", "protein")
        self.settings = Settings(
            binaries={"blastp": str(self.binary)},
            corpora={self.proteins.id: self.proteins},
            retrieval_binary="/opt/blast/bin/blastdbcmd",
            num_threads=2,
        )
        self.service = SearchService(self.settings)

    def _fake_env(self, *, status: int = 0, stderr: str = "", report: Path | None = TWO_QUERIES):
        env = {
            "FAKE_BLAST_RECORD": str(self.record),
            "FAKE_BLAST_STATUS": str(status),
            "FAKE_BLAST_STDERR": stderr,
            "FAKE_BLAST_REPORT": str(report) if report else "",
        }
        return patch.dict(os.environ, env)

    def _recorded(self) -> dict:
        return json.loads(self.record.read_text(encoding="utf-8"))

    def test_submit_parses_report(self):
        with self._fake_env():
            result = self.service.submit("blastp", PROTEIN, [self.proteins.id], "-evalue 10")

        self.assertEqual(list(result.queries), ["SI2.2.0_06267", "SI2.2.0_13722"])
        self.assertIn(str(self.binary), result.command_line)
        recorded = self._recorded()
        self.assertEqual(recorded["query"], PROTEIN)
        self.assertIn("-html", recorded["args"])
        self.assertEqual(recorded["args"][recorded["args"].index("-db") + 1], "/db/SI2.2.3.fa")
        self.assertFalse(Path(recorded["query_path"]).exists())

    def test_exit_status_one_raises_argument_error(self):
        stderr = "Error: (CArgException::eSynopsis) Too many positional arguments\n"
        with self._fake_env(status=1, stderr=stderr, report=None):
            with self.assertRaises(SearchArgumentError) as ctx:
                self.service.submit("blastp", PROTEIN, [self.proteins.id], "-matrix moo")
        self.assertEqual(str(ctx.exception), "Too many positional arguments")
        self.assertEqual(ctx.exception.http_status, 400)
        self.assertFalse(Path(self._recorded()["query_path"]).exists())

    def test_exit_status_two_raises_internal_error(self):
        with self._fake_env(status=2, stderr="BLAST Database error: No alias or index file found\n", report=None):
            with self.assertRaises(SearchInternalError) as ctx:
                self.service.submit("blastp", PROTEIN, [self.proteins.id])
        self.assertEqual(ctx.exception.status, 2)
        self.assertEqual(ctx.exception.message, "BLAST Database error: No alias or index file found\n")
        self.assertEqual(ctx.exception.http_status, 500)
        self.assertTrue(str(ctx.exception).startswith("2, BLAST Database error"))

    def test_validation_fault_spawns_nothing(self):
        with self._fake_env(), patch.object(service_module, "run_command") as run:
            with self.assertRaises(SearchArgumentError):
                self.service.submit("blastp", PROTEIN, [self.proteins.id], "-evalue 1; rm -rf /")
            run.assert_not_called()
        self.assertFalse(self.record.exists())

    def test_result_payload_links_hits(self):
        with self._fake_env():
            result = self.service.submit("blastp", PROTEIN, [self.proteins.id])
        payload = self.service.result_payload(result, [self.proteins.id])

        first_hit = payload["queries"][0]["hits"][0]
        second_hit = payload["queries"][1]["hits"][0]
        self.assertIn("href='/entries?id=lcl|Aech_17012&amp;corpus=", first_hit["header"])
        self.assertEqual(first_hit["coordinates"], [[68, 155]])
        self.assertTrue(second_hit["header"].startswith("><a name=BL_ORD_ID:15102></a>"))
        self.assertEqual(payload["retrievable_count"], 1)
        self.assertTrue(payload["retrieval_link"].startswith("/entries?id=lcl|Aech_17012"))

    def test_configured_overrides_are_applied(self):
        service = SearchService(
            self.settings,
            HyperlinkOverrides(link_builder=lambda context: f"https://example.org/{context.sequence_id}"),
        )
        with self._fake_env():
            result = service.submit("blastp", PROTEIN, [self.proteins.id])
        hit = result.queries["SI2.2.0_06267"].hits["lcl|Aech_17012"]
        self.assertIn("href='https://example.org/lcl|Aech_17012'", service.resolve_hit(hit, [self.proteins.id]))

    def test_algorithms_and_corpora_are_read_only(self):
        self.assertEqual(self.service.algorithms(), ["blastp"])
        with self.assertRaises(TypeError):
            self.service.corpora()["new"] = self.proteins  # type: ignore[index]


class BuildServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.proteins = CorpusEntry.from_storage_name("/db/SI2.2.3.fa", "Solenopsis proteins", "protein")
        self.links = types.ModuleType("site_links")
        self.links.OVERRIDES = HyperlinkOverrides(link_builder=lambda context: f"https://example.org/{context.sequence_id}")
        self.links.make_overrides = lambda: HyperlinkOverrides(line_builder=lambda context: "custom")
        self.links.NOT_OVERRIDES = "nope"
        patcher = patch.dict(sys.modules, {"site_links": self.links})
        patcher.start()
        self.addCleanup(patcher.stop)

    def _settings(self, hyperlinks=None) -> Settings:
        return Settings(
            binaries={"blastp": "/opt/blast/bin/blastp"},
            corpora={self.proteins.id: self.proteins},
            hyperlinks=hyperlinks,
        )

    def test_defaults_without_configured_overrides(self):
        self.assertIs(build_service(self._settings()).overrides, DEFAULT_OVERRIDES)

    def test_configured_overrides_are_loaded(self):
        service = build_service(self._settings("site_links:OVERRIDES"))
        self.assertIs(service.overrides, self.links.OVERRIDES)

        service = build_service(self._settings("site_links:make_overrides"))
        self.assertIsNotNone(service.overrides.line_builder)

    def test_explicit_overrides_win(self):
        explicit = HyperlinkOverrides(link_builder=lambda context: None)
        service = build_service(self._settings("site_links:OVERRIDES"), explicit)
        self.assertIs(service.overrides, explicit)

    def test_bad_override_reference_is_a_configuration_error(self):
        for reference in ("site_links:MISSING", "no_such_module_here:OVERRIDES", "site_links:NOT_OVERRIDES"):
            with self.subTest(reference=reference):
                with self.assertRaises(RuntimeError):
                    build_service(self._settings(reference))
        with self.assertRaises(ValueError):
            build_service(self._settings("site_links"))

    def test_from_env_reads_override_reference(self):
        with patch.object(settings_module, "find_binary", return_value="/bin/x"), patch.object(
            settings_module, "scan_corpora", return_value={}
        ):
            settings = Settings.from_env(
                {"SEQSEARCH_DATABASE_DIR": "/db", "SEQSEARCH_HYPERLINKS": " site_links:OVERRIDES "}
            )
        self.assertEqual(settings.hyperlinks, "site_links:OVERRIDES")


class FetchEntriesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.proteins = CorpusEntry.from_storage_name("/db/SI2.2.3.fa", "Solenopsis proteins", "protein")
        self.genome = CorpusEntry.from_storage_name("/db/genome.fa", "Genome", "nucleotide")
        self.service = SearchService(
            Settings(
                binaries={"blastp": "/opt/blast/bin/blastp"},
                corpora={self.proteins.id: self.proteins, self.genome.id: self.genome},
                retrieval_binary="/opt/blast/bin/blastdbcmd",
            )
        )

    def test_fetch_entries_runs_retrieval_binary(self):
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=">lcl|a\nMNT\n>lcl|b\nACG\n", stderr="")
        with patch.object(service_module.subprocess, "run", return_value=completed) as run:
            batch = self.service.fetch_entries(["lcl|a", "lcl|b", "lcl|a"], [self.proteins.id, self.genome.id])

        args = run.call_args[0][0]
        self.assertEqual(
            args,
            ["/opt/blast/bin/blastdbcmd", "-db", "/db/SI2.2.3.fa /db/genome.fa", "-entry", "lcl|a lcl|b"],
        )
        self.assertEqual(batch.requested, ["lcl|a", "lcl|b"])
        self.assertEqual(batch.found, 2)
        self.assertTrue(batch.complete)

    def test_fetch_entries_reports_count_mismatch(self):
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=">lcl|a\nMNT\n", stderr="")
        with patch.object(service_module.subprocess, "run", return_value=completed):
            with self.assertLogs("seqsearch.service", level="WARNING"):
                batch = self.service.fetch_entries(["lcl|a", "lcl|b"], [self.proteins.id])
        self.assertFalse(batch.complete)

    def test_fetch_entries_validates_input(self):
        with self.assertRaises(SearchArgumentError):
            self.service.fetch_entries([], [self.proteins.id])
        with self.assertRaises(SearchArgumentError):
            self.service.fetch_entries(["lcl|a"], ["unknown"])
        with self.assertRaises(SearchArgumentError):
            self.service.fetch_entries(["lcl|a"], [])


if __name__ == "__main__":
    unittest.main()
