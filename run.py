from pickem import create_app, db
from pickem.models import Game, Pick, Score, User

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Game": Game,
        "Pick": Pick,
        "Score": Score,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
