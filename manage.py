#!/usr/bin/env python
import click

from automation_webhooks import create_app
from automation_webhooks.labels import LabelReconciler
from automation_webhooks.release import create_release_pull_request


app = create_app()

@click.group()
def cli():
    pass

@click.command("create-release")
@click.argument("email")
@click.argument("repo")
def create_release(email, repo):
    "Opens or refreshes the release pull request for REPO, reporting to EMAIL on Slack"
    with app.app_context():
        create_release_pull_request(email, repo)


@click.command("add-labels")
@click.argument("repo")
@click.argument("number", type=int)
@click.argument("labels", nargs=-1, required=True)
def add_labels(repo, number, labels):
    "Adds LABELS to pull request REPO#NUMBER, removing the labels they exclude"
    with app.app_context():
        change = LabelReconciler().add_labels(repo, number, labels)
    if change.changed:
        click.echo(f"{repo}#{number} now has labels: {', '.join(change.to_apply)}")
    else:
        click.echo(f"{repo}#{number} already had those labels")


cli.add_command(create_release)
cli.add_command(add_labels)


if __name__ == "__main__":
    cli()
