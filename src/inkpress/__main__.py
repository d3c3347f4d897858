from inkpress.cli import app

app()
