from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import typer

from article_cascade.config import load_config
from article_cascade.pipeline import build_catalog, build_engine, extract_html, extract_url
from article_cascade.utils import load_env_file

app = typer.Typer(help="Article extraction cascade CLI")


@app.callback()
def main() -> None:
    """Article extraction cascade CLI."""
    return None


@app.command()
def extract(
    url: str = typer.Argument(..., help="Article URL to extract."),
    rules: Optional[Path] = typer.Option(None, "--rules", help="Path to site rules YAML."),
    config: Path = typer.Option(Path("config.yaml"), "--config", help="Path to config.yaml."),
    browser: Optional[bool] = typer.Option(
        None,
        "--browser/--no-browser",
        help="Render the page with Playwright instead of plain HTTP.",
    ),
) -> None:
    """Fetch a URL and print the extraction result as JSON."""
    load_env_file(Path(".env"))
    app_config = load_config(config)
    result = extract_url(url, app_config, rules_path=rules, use_browser=browser)
    typer.echo(_dump(result.to_dict()))
    if not result.success:
        raise typer.Exit(code=1)


@app.command("extract-file")
def extract_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved HTML file."),
    url: str = typer.Option(..., "--url", help="URL the HTML was fetched from."),
    rules: Optional[Path] = typer.Option(None, "--rules", help="Path to site rules YAML."),
    config: Path = typer.Option(Path("config.yaml"), "--config", help="Path to config.yaml."),
) -> None:
    """Run the cascade over a saved HTML file."""
    app_config = load_config(config)
    html = path.read_text(encoding="utf-8", errors="replace")
    with build_engine(app_config, rules_path=rules) as engine:
        result = extract_html(engine, html, url)
    typer.echo(_dump(result.to_dict()))
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def match(
    url: str = typer.Argument(..., help="URL to look up."),
    rules: Optional[Path] = typer.Option(None, "--rules", help="Path to site rules YAML."),
    config: Path = typer.Option(Path("config.yaml"), "--config", help="Path to config.yaml."),
) -> None:
    """Show which bespoke rules apply to a URL."""
    catalog = build_catalog(load_config(config), rules)
    best = catalog.find_best_rule_for_url(url)
    typer.echo(f"Domain: {catalog.test_url_match(url)['domain'] or '-'}")
    if best is None:
        typer.secho("No bespoke rule matches; universal detection applies.", fg=typer.colors.YELLOW)
        return
    for rule in catalog.find_rules_for_url(url):
        marker = "*" if rule.id == best.rule.id else " "
        typer.echo(f"{marker} {rule.id} ({rule.name}) priority={rule.priority}")
    typer.echo(f"Match score: {best.match_score:.2f} - {best.match_reason}")


@app.command("rules-stats")
def rules_stats(
    rules: Optional[Path] = typer.Option(None, "--rules", help="Path to site rules YAML."),
    config: Path = typer.Option(Path("config.yaml"), "--config", help="Path to config.yaml."),
) -> None:
    """Print rule catalog statistics."""
    catalog = build_catalog(load_config(config), rules)
    typer.echo(_dump({**catalog.stats(), "domain_coverage": catalog.domain_coverage()}))


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


if __name__ == "__main__":
    app()
